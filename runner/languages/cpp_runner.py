import re
import sys
from typing import List

from runner.languages.common import LanguageRunner


class CppRunner(LanguageRunner):
    """Handles both C (`.c`) and C++ sources; the suffix picks the compiler."""
    oom_pattern = re.compile(
        r"^terminate called after throwing an instance of 'std::bad_alloc'",
        re.MULTILINE)

    @property
    def binary(self):
        return self.workdir / 'solution'

    def compile_command(self) -> List[str]:
        if self.source.suffix == '.c':
            compiler, standard = 'gcc', '-std=c11'
        else:
            compiler, standard = 'g++', '-std=c++17'
        return [
            compiler,
            standard,
            '-O2',
            '-Wall',
            '-o',
            str(self.binary),
            str(self.source),
            '-lm',
        ]

    def run_command(self) -> List[str]:
        return [str(self.binary)]


if __name__ == '__main__':
    sys.exit(CppRunner.main())
