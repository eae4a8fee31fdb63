"""
Directory tree copying with name-based exclusions.
"""

import shutil
from pathlib import Path
from typing import Callable, Collection, List, Union

PathLike = Union[str, Path]


def exclusion_filter(
    names: Collection[str] = (),
    suffixes: Collection[str] = (),
) -> Callable[[str, List[str]], List[str]]:
    """Build a ``shutil.copytree`` ignore callback matching exact names or name suffixes."""
    names = frozenset(names)
    suffixes = tuple(suffixes)

    def ignore(_directory: str, entries: List[str]) -> List[str]:
        return [e for e in entries if e in names or (suffixes and e.endswith(suffixes))]

    return ignore


def copy_tree(
    source: PathLike,
    destination: PathLike,
    exclude: Collection[str] = (),
    exclude_suffixes: Collection[str] = (),
) -> None:
    """
    Copy ``source`` onto ``destination``, merging into existing directories
    and overwriting existing files. Symlinks are copied as links.
    """
    source, destination = Path(source), Path(destination)
    excluded = exclusion_filter(exclude, exclude_suffixes)

    def ignore(directory: str, entries: List[str]) -> List[str]:
        ignored = excluded(directory, entries)
        target_dir = destination / Path(directory).relative_to(source)
        for name in entries:
            if name in ignored or not (Path(directory) / name).is_symlink():
                continue
            # os.symlink cannot overwrite an existing entry.
            target = target_dir / name
            if target.is_symlink() or target.is_file():
                target.unlink()
        return ignored

    shutil.copytree(source, destination, symlinks=True, ignore=ignore, dirs_exist_ok=True)


def remove_tree(path: PathLike) -> bool:
    """
    Remove a directory tree.

    Returns:
        False if the path did not exist
    """
    path = Path(path)
    if not path.exists() and not path.is_symlink():
        return False
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()
    return True


def mirror_tree(source: PathLike, destination: PathLike, preserve: Collection[str] = ()) -> None:
    """
    Make ``destination`` match ``source``.

    Entries absent from ``source`` are deleted from ``destination`` unless
    their name is in ``preserve``; preserved entries are never touched.
    """
    source, destination = Path(source), Path(destination)
    preserve = frozenset(preserve)
    destination.mkdir(parents=True, exist_ok=True)
    _prune(source, destination, preserve)
    copy_tree(source, destination, exclude=preserve)


def _prune(source: Path, destination: Path, preserve: frozenset) -> None:
    for entry in destination.iterdir():
        if entry.name in preserve:
            continue
        if entry.is_symlink():
            # Links are recreated by the copy.
            entry.unlink()
            continue
        counterpart = source / entry.name
        if not counterpart.exists() and not counterpart.is_symlink():
            remove_tree(entry)
        elif entry.is_dir() and not entry.is_symlink():
            if counterpart.is_dir() and not counterpart.is_symlink():
                _prune(counterpart, entry, preserve)
            else:
                remove_tree(entry)
        elif counterpart.is_dir() and not counterpart.is_symlink():
            remove_tree(entry)
