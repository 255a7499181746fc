"""
Parser for the report every language runner prints on stdout.

    === COMPILATION ===          (absent for interpreted languages)
    SUCCESS | COMPILATION_ERROR
    Compile Time: <float>s
    === COMPILER OUTPUT ===      (only after COMPILATION_ERROR)
    === EXECUTION ===
    SUCCESS | TIME_LIMIT_EXCEEDED | MEMORY_LIMIT_EXCEEDED | RUNTIME_ERROR
    Exit Code: <int>
    Execution Time: <float>s
    === PROGRAM OUTPUT ===
    <at most 4096 bytes>
    === RESOURCE USAGE ===
    Memory Limit: <int>MB
    Time Limit: <int>s
    Memory Used: <int>KB
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional

from dispatcher.constant import FailureKind

__all__ = (
    'RunnerReport',
    'parse_report',
    'classify_exit_code',
    'format_report',
    'truncate_output',
    'OUTPUT_LIMIT',
)

OUTPUT_LIMIT = 4096  # bytes

_HEADER = re.compile(r'^=== ([A-Z ]+) ===$', re.MULTILINE)
# older runners call the python compile phase a syntax check
_SECTION_ALIASES = {
    'SYNTAX CHECK': 'COMPILATION',
    'SYNTAX ERROR OUTPUT': 'COMPILER OUTPUT',
}
_STATUS_KINDS = {
    'COMPILATION_ERROR': FailureKind.COMPILATION_ERROR,
    'SYNTAX_ERROR': FailureKind.COMPILATION_ERROR,
    'TIME_LIMIT_EXCEEDED': FailureKind.TIME_LIMIT_EXCEEDED,
    'MEMORY_LIMIT_EXCEEDED': FailureKind.MEMORY_LIMIT_EXCEEDED,
    'RUNTIME_ERROR': FailureKind.RUNTIME_ERROR,
}


@dataclass
class RunnerReport:
    failure_kind: Optional[FailureKind] = None
    compile_duration: int = 0  # ms
    run_duration: int = 0  # ms
    exit_code: int = 0
    output: str = ''
    memory_used: int = 0  # KB
    message: str = ''
    sections: Dict[str, str] = field(default_factory=dict)


def truncate_output(data, limit: int = OUTPUT_LIMIT) -> str:
    """Cut `data` (bytes or str) to at most `limit` UTF-8 bytes."""
    if isinstance(data, str):
        data = data.encode('utf-8', 'replace')
    # a multi-byte character split by the cut is dropped
    return data[:limit].decode('utf-8', 'ignore')


def classify_exit_code(exit_code: int) -> Optional[FailureKind]:
    if exit_code == 0:
        return None
    if exit_code == 124:
        return FailureKind.TIME_LIMIT_EXCEEDED
    # 128 + SIGKILL; the kernel kills for memory, the harness for time
    if exit_code == 137:
        return FailureKind.MEMORY_LIMIT_EXCEEDED
    # 128 + SIGXCPU, the CPU rlimit
    if exit_code == 152:
        return FailureKind.TIME_LIMIT_EXCEEDED
    # 139 / 134 / 136 (SIGSEGV / SIGABRT / SIGFPE) and everything else
    return FailureKind.RUNTIME_ERROR


def _split_sections(text: str) -> Dict[str, str]:
    sections = {}
    matches = list(_HEADER.finditer(text))
    # headers printed by the program itself are part of its output
    names = [m.group(1) for m in matches]
    if 'PROGRAM OUTPUT' in names and 'RESOURCE USAGE' in names:
        first = names.index('PROGRAM OUTPUT')
        last = len(names) - 1 - names[::-1].index('RESOURCE USAGE')
        if first < last:
            matches = matches[:first + 1] + matches[last:]
    for i, m in enumerate(matches):
        name = _SECTION_ALIASES.get(m.group(1), m.group(1))
        start = m.end()
        # skip the newline right after the header
        if text[start:start + 1] == '\n':
            start += 1
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        sections[name] = text[start:end]
    return sections


def _seconds_to_ms(body: str, key: str) -> Optional[int]:
    m = re.search(rf'^{key}:\s*([0-9.]+)s\s*$', body, re.MULTILINE)
    if m is None:
        return None
    try:
        return int(round(float(m.group(1)) * 1000))
    except ValueError:
        return None


def _first_line(body: str) -> str:
    for line in body.splitlines():
        if line.strip():
            return line.strip()
    return ''


def _strip_section_tail(body: str) -> str:
    # the runner emits one newline after the program output before the
    # next header; it is not part of the output
    return body[:-1] if body.endswith('\n') else body


def parse_report(text: str, exit_code: int,
                 time_limit: Optional[float] = None) -> RunnerReport:
    """
    Turn runner stdout into a `RunnerReport`.

    The printed status wins over the process exit code because some
    failure kinds are only distinguishable there. A report whose run
    duration reaches `time_limit` (seconds) is always a time limit
    exceeded. Unparseable output is a system error.
    """
    sections = _split_sections(text)
    report = RunnerReport(exit_code=exit_code, sections=sections)
    compilation = sections.get('COMPILATION')
    if compilation is not None:
        report.compile_duration = _seconds_to_ms(compilation,
                                                 'Compile Time') or 0
        if _STATUS_KINDS.get(_first_line(compilation)) is \
                FailureKind.COMPILATION_ERROR:
            report.failure_kind = FailureKind.COMPILATION_ERROR
            report.message = sections.get('COMPILER OUTPUT', '').strip()
            return report
    execution = sections.get('EXECUTION')
    if execution is None:
        # the whole runner got killed before it could report
        kind = classify_exit_code(exit_code)
        if kind in (FailureKind.TIME_LIMIT_EXCEEDED,
                    FailureKind.MEMORY_LIMIT_EXCEEDED):
            report.failure_kind = kind
            return report
        report.failure_kind = FailureKind.SYSTEM_ERROR
        report.message = (text.strip()[:500]
                          or f'runner exited with {exit_code} and no report')
        return report
    m = re.search(r'^Exit Code:\s*(-?\d+)\s*$', execution, re.MULTILINE)
    if m is not None:
        report.exit_code = int(m.group(1))
    report.run_duration = _seconds_to_ms(execution, 'Execution Time') or 0
    report.output = _strip_section_tail(sections.get('PROGRAM OUTPUT', ''))
    usage = sections.get('RESOURCE USAGE', '')
    m = re.search(r'^Memory Used:\s*(\d+)KB\s*$', usage, re.MULTILINE)
    if m is not None:
        report.memory_used = int(m.group(1))
    status = _first_line(execution)
    if status == 'SUCCESS':
        report.failure_kind = None
    elif status in _STATUS_KINDS:
        report.failure_kind = _STATUS_KINDS[status]
    else:
        report.failure_kind = classify_exit_code(report.exit_code)
    if (time_limit is not None
            and report.run_duration >= time_limit * 1000
            and report.failure_kind is not FailureKind.MEMORY_LIMIT_EXCEEDED):
        report.failure_kind = FailureKind.TIME_LIMIT_EXCEEDED
    if report.failure_kind is FailureKind.RUNTIME_ERROR:
        report.message = f'Exit Code: {report.exit_code}'
    return report


def format_report(
    execution_status: str,
    exit_code: int,
    run_seconds: float,
    output: str,
    memory_limit: int,
    time_limit: int,
    memory_used: int,
    compile_status: Optional[str] = None,
    compile_seconds: float = 0.0,
    compiler_output: str = '',
) -> str:
    lines = []
    if compile_status is not None:
        lines += [
            '=== COMPILATION ===',
            compile_status,
            f'Compile Time: {compile_seconds:.3f}s',
        ]
        if compile_status != 'SUCCESS':
            lines += ['=== COMPILER OUTPUT ===', compiler_output.rstrip('\n')]
            return '\n'.join(lines) + '\n'
    lines += [
        '=== EXECUTION ===',
        execution_status,
        f'Exit Code: {exit_code}',
        f'Execution Time: {run_seconds:.3f}s',
        '=== PROGRAM OUTPUT ===',
        output,
        '=== RESOURCE USAGE ===',
        f'Memory Limit: {memory_limit}MB',
        f'Time Limit: {time_limit}s',
        f'Memory Used: {memory_used}KB',
    ]
    return '\n'.join(lines) + '\n'
