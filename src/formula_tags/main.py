"""
Batch entrypoint replaying keystroke scripts through the formula editor.

This script:
- Reads batches of keystroke scripts: a .txt file, or every .txt member of an archive
- Replays each non-empty line into a fresh editor, one key per character
- Optionally stores the formula built by each line in a JSON formula store
- Writes one result or error per line next to the input file

Lines are typed exactly as a user would type them into the tag input:
operators become operator tags, whitespace commits the pending text and the
formula is evaluated at the end of the line.

Examples
--------
input line: (revenue - cost) * 12
output line: (revenue - cost) * 12 = 1440.0
"""

import argparse
from pathlib import Path
import tarfile
import tempfile
from typing import Dict, List, Optional
import zipfile

import py7zr
from pydantic import BaseModel, Field, FilePath, ValidationError

from formula_tags.common.config import EditorSettings
from formula_tags.common.logger import logger
from formula_tags.editor.editor import SequenceEditor
from formula_tags.editor.session import ActionOutcome
from formula_tags.services.storage import JsonFileStore
from formula_tags.services.suggestions import StaticSuggestionClient, SuggestionClient


class CliArgs(BaseModel):
    """
    Pydantic model used to validate CLI arguments.

    Attributes
    ----------
    file_path : FilePath
        Path to the file containing keystroke scripts.
    catalog : FilePath, optional
        JSON catalog of variables offered as suggestions.
    store : Path, optional
        JSON formula store receiving the formula of every script.
    timeout : float
        Seconds to wait for each suggestion lookup.
    """

    file_path: FilePath
    catalog: Optional[FilePath] = None
    store: Optional[Path] = None
    timeout: float = Field(default=2.0, gt=0)


def parse_args(argv: Optional[List[str]] = None) -> CliArgs:
    """
    Parse and validate command-line arguments.

    :param argv: Arguments to parse, defaults to ``sys.argv[1:]``
    :return: Validated CLI arguments
    :rtype: CliArgs
    """
    parser = argparse.ArgumentParser(
        description="Replay formula keystroke scripts and evaluate them"
    )

    parser.add_argument(
        "file_path",
        help="Path to the file (.txt, .zip, .tar.xz or .7z) containing keystroke scripts",
    )
    parser.add_argument(
        "--catalog",
        default=None,
        help="JSON array of {id, name, category, value} variables used as suggestions",
    )
    parser.add_argument(
        "--store",
        default=None,
        help="JSON formula store where the formula of every script is saved",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=2.0,
        help="Seconds to wait for each suggestion lookup",
    )

    args = parser.parse_args(argv)

    try:
        return CliArgs(file_path=args.file_path, catalog=args.catalog, store=args.store, timeout=args.timeout)
    except ValidationError as exc:
        parser.error(str(exc))


def _split_scripts(content: str) -> List[str]:
    return [line.strip() for line in content.splitlines() if line.strip()]


def read_archive_batches(archive_path: Path) -> Dict[str, List[str]]:
    """
    Read every .txt member of an archive as its own batch of scripts.

    Supported formats: .zip, .tar.xz and .7z.

    :param Path archive_path: Path to the archive file

    :return: Scripts per member name, members in name order
    :rtype: Dict[str, List[str]]
    :raises ValueError: If the archive holds no .txt member or its format is unsupported
    """
    contents: Dict[str, str] = {}

    if archive_path.suffix == ".zip":
        with zipfile.ZipFile(archive_path, "r") as zf:
            for name in zf.namelist():
                if name.endswith(".txt"):
                    contents[name] = zf.read(name).decode()

    elif archive_path.suffixes[-2:] == [".tar", ".xz"]:
        with tarfile.open(archive_path, "r:xz") as tf:
            for member in tf.getmembers():
                if member.isfile() and member.name.endswith(".txt"):
                    contents[member.name] = tf.extractfile(member).read().decode()

    elif archive_path.suffix == ".7z":
        # py7zr only extracts to disk
        with tempfile.TemporaryDirectory() as tmpdir, py7zr.SevenZipFile(archive_path, mode="r") as archive:
            names = [name for name in archive.getnames() if name.endswith(".txt")]
            if names:
                archive.extract(path=tmpdir, targets=names)
            for name in names:
                contents[name] = (Path(tmpdir) / name).read_text()

    else:
        raise ValueError(f"📄❌ Unsupported archive format: {archive_path.suffix}")

    if not contents:
        raise ValueError(f"📄❌ No .txt file found in {archive_path.name}")
    return {name: _split_scripts(contents[name]) for name in sorted(contents)}


def read_batches(input_path: Path) -> Dict[str, List[str]]:
    """
    Load the non-empty keystroke scripts of a text file or archive.

    :param Path input_path: Plain .txt file or supported archive
    :return: Scripts per batch name; a .txt file is a single batch named after the file
    :rtype: Dict[str, List[str]]
    """
    if input_path.suffix == ".txt":
        return {input_path.name: _split_scripts(input_path.read_text())}
    return read_archive_batches(input_path)


def build_output_path(input_path: Path) -> Path:
    """
    Construct a safe output file path based on the input file.

    - Preserves the original folder
    - Replaces dots in extensions with underscores
    - Appends '_results.txt' at the end

    Examples
    --------
    input: resources/formulas.tar.xz
    output: resources/formulas_tar_xz_results.txt

    :param input_path: Path to the input file
    :return: Path to the output file
    """
    # Path.stem only drops the last suffix
    base_name = input_path.name[: -len("".join(input_path.suffixes))] if input_path.suffixes else input_path.name
    suffix_safe = "".join(input_path.suffixes).replace(".", "_")
    return input_path.with_name(f"{base_name}{suffix_safe}_results.txt")


def replay(editor: SequenceEditor, script: str) -> ActionOutcome:
    """
    Type a keystroke script into an editor and evaluate the formula.

    :param SequenceEditor editor: Editor receiving the keys
    :param str script: One line of keys; whitespace commits pending text
    :return: Outcome of the final evaluation
    :rtype: ActionOutcome
    """
    for key in script:
        if key.isspace():
            editor.commit()
        else:
            editor.press_key(key)
    return editor.evaluate()


def run_scripts(
    scripts: List[str],
    client: Optional[SuggestionClient],
    settings: EditorSettings,
    store_path: Optional[Path] = None,
    batch: str = "",
) -> List[str]:
    """
    Replay each script in a fresh editor and format one output line per script.

    With ``store_path``, the formula of each script is saved in that JSON store
    under ``<storage_key>:<batch>:<line number>``.

    :return: Lines formatted as ``<script> = <result>`` or ``<script> -> ERROR: <message>``
    :rtype: List[str]
    """
    lines: List[str] = []
    for line_number, script in enumerate(scripts, start=1):
        store = None
        if store_path is not None:
            store = JsonFileStore(path=store_path, key=f"{settings.storage_key}:{batch}:{line_number}")
        editor = SequenceEditor(suggestions=client, store=store, settings=settings)
        try:
            outcome = replay(editor, script)
        finally:
            editor.close()

        if outcome.error is None:
            lines.append(f"{script} = {outcome.result}")
        else:
            logger.error(f"📄❌ Line {line_number} of {batch or 'input'} could not be evaluated: {outcome.error}")
            lines.append(f"{script} -> ERROR: {outcome.error}")
    return lines


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main function of the ``formula-tags`` command.

    Archives produce one ``# <member>`` header line before the results of each member.
    """
    cli_args = parse_args(argv)
    input_path: Path = Path(cli_args.file_path)
    output_path: Path = build_output_path(input_path)

    client: Optional[SuggestionClient] = None
    if cli_args.catalog is not None:
        client = StaticSuggestionClient.from_json(Path(cli_args.catalog))

    settings = EditorSettings(lookup_timeout=cli_args.timeout)
    batches = read_batches(input_path)
    with_headers = input_path.suffix != ".txt"

    count = 0
    with output_path.open("w", encoding="utf-8") as f_out:
        for batch, scripts in batches.items():
            if with_headers:
                f_out.write(f"# {batch}\n")
            for line in run_scripts(scripts, client, settings, cli_args.store, batch):
                f_out.write(f"{line}\n")
                count += 1
    logger.info(f"📄✅ {count} formulas evaluated, results written to {output_path}")


if __name__ == "__main__":
    main()
