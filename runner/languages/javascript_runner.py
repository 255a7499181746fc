import re
import sys
from typing import List

from runner.languages.common import LanguageRunner


class JavaScriptRunner(LanguageRunner):
    compiled = False
    limit_address_space = False
    oom_pattern = re.compile(r'^FATAL ERROR: .*JavaScript heap out of memory',
                             re.MULTILINE)

    def run_command(self) -> List[str]:
        return [
            'node',
            f'--max-old-space-size={self.memory_limit}',
            str(self.source),
        ]


if __name__ == '__main__':
    sys.exit(JavaScriptRunner.main())
