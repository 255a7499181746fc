import textwrap
import threading

from dispatcher.constant import FailureKind
from runner.sandbox import RUNNERS, SandboxResult

TWO_SUM_PROBLEM_ID = 1

# (input, expected output, hidden)
TWO_SUM_CASES = [
    ('4\n2 7 11 15\n9', '0 1', False),
    ('3\n3 2 4\n6', '1 2', True),
    ('2\n3 3\n6', '0 1', True),
]

TWO_SUM_PY = textwrap.dedent('''\
    n = int(input())
    nums = list(map(int, input().split()))
    target = int(input())
    seen = {}
    for i, x in enumerate(nums):
        if target - x in seen:
            print(seen[target - x], i)
            break
        seen[x] = i
''')


class DummySandbox:
    """
    Stands in for the real sandbox. `handler(code, stdin)` returns the
    `SandboxResult`; by default code equal to `TWO_SUM_PY` answers every
    Two Sum case correctly and anything else prints garbage.
    """

    def __init__(self, handler=None):
        self.handler = handler or two_sum_handler
        self.calls = []
        self.lock = threading.Lock()

    @staticmethod
    def supports(language):
        return language in RUNNERS

    def run(self, language, source_code, stdin, time_limit, memory_limit):
        with self.lock:
            self.calls.append((language, stdin, time_limit, memory_limit))
        return self.handler(source_code, stdin)


def two_sum_handler(code, stdin):
    answers = {i: o for i, o, _ in TWO_SUM_CASES}
    if code == TWO_SUM_PY:
        return SandboxResult(stdout=answers[stdin] + '\n',
                             run_duration=12,
                             memory_used=9000)
    return SandboxResult(stdout='garbage\n', run_duration=5, memory_used=8000)


def failing_handler(kind: FailureKind, message: str = ''):

    def handler(code, stdin):
        return SandboxResult(stdout='', failure_kind=kind, message=message)

    return handler
