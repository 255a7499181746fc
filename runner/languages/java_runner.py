import re
import sys
from typing import List

from runner.languages.common import LanguageRunner


class JavaRunner(LanguageRunner):
    # the JVM starts dozens of threads and maps a huge address space
    limit_address_space = False
    max_processes = 256
    oom_pattern = re.compile(
        r'^Exception in thread "[^"]*" java\.lang\.OutOfMemoryError',
        re.MULTILINE)

    @property
    def main_class(self) -> str:
        return self.source.stem

    def compile_command(self) -> List[str]:
        return [
            'javac',
            '-J-Xmx512m',
            '-encoding',
            'UTF-8',
            '-d',
            str(self.workdir),
            str(self.source),
        ]

    def run_command(self) -> List[str]:
        return [
            'java',
            f'-Xmx{self.memory_limit}m',
            '-Xss64m',
            '-XX:+UseSerialGC',
            '-cp',
            str(self.workdir),
            self.main_class,
        ]


if __name__ == '__main__':
    sys.exit(JavaRunner.main())
