import re
import sys
from typing import List

from runner.languages.common import LanguageRunner


class PythonRunner(LanguageRunner):
    oom_pattern = re.compile(r'^MemoryError\b', re.MULTILINE)

    def compile_command(self) -> List[str]:
        # py_compile catches syntax errors before any test input is read
        return [sys.executable, '-m', 'py_compile', str(self.source)]

    def run_command(self) -> List[str]:
        # isolated mode: no user site, no PYTHON* env, no .pyc writes
        return [sys.executable, '-I', '-S', '-B', str(self.source)]


if __name__ == '__main__':
    sys.exit(PythonRunner.main())
