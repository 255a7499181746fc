import shutil
import tempfile
from datetime import datetime
from pathlib import Path

from dispatcher import config
from dispatcher.constant import Language
from dispatcher.utils import logger

SOURCE_FILENAMES = {
    Language.C: 'solution.c',
    Language.CPP: 'solution.cpp',
    Language.PY: 'solution.py',
    # javac wants the file named after the public class
    Language.JAVA: 'Solution.java',
    Language.JS: 'solution.js',
}
INPUT_FILENAME = 'input.txt'


def source_filename(language: Language) -> str:
    try:
        return SOURCE_FILENAMES[language]
    except KeyError:
        raise ValueError(f'no source layout for {language.name}') from None


def create_execution_dir(root_dir: Path) -> Path:
    """Make a fresh directory nobody else will ever be handed."""
    root_dir.mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix='exec_', dir=root_dir))
    # the runner may execute as another uid inside a container
    path.chmod(0o777)
    return path


def extract(
    execution_dir: Path,
    language: Language,
    source_code: str,
    stdin: str,
) -> tuple[Path, Path]:
    source_path = execution_dir / source_filename(language)
    source_path.write_text(source_code, encoding='utf-8')
    input_path = execution_dir / INPUT_FILENAME
    input_path.write_text(stdin or '', encoding='utf-8')
    logger().debug(f'prepared execution dir {execution_dir.name} '
                   f'[lang={language.name}, size={len(source_code)}]')
    return source_path, input_path


def clean_data(execution_dir: Path):
    shutil.rmtree(execution_dir, ignore_errors=True)


def backup_data(execution_dir: Path, backup_root: Path = None) -> Path:
    backup_root = backup_root or config.BACKUP_DIR
    backup_root.mkdir(parents=True, exist_ok=True)
    dest = backup_root / f'{execution_dir.name}_{datetime.now().strftime("%Y-%m-%d_%H:%M:%S")}'
    shutil.move(str(execution_dir), str(dest))
    return dest
