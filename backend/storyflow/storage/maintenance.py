from __future__ import annotations

import argparse
import logging
import shutil
from pathlib import Path

from storyflow.graph.model import graph_from_layers
from storyflow.graph.seed import generate_seed_layers
from storyflow.storage.graph import GraphStorage

logger = logging.getLogger(__name__)


def _copy_path(src: Path, dst: Path) -> None:
    # Kuzu 旧版本以目录存库，新版本为单文件。
    copy = shutil.copytree if src.is_dir() else shutil.copy2
    copy(src, dst)


def backup_db(db_path: Path, backup_path: Path) -> None:
    """备份目标已存在时直接报错，不覆盖。"""
    if not db_path.exists():
        raise FileNotFoundError(f"Database not found: {db_path}")
    if backup_path.exists():
        raise FileExistsError(f"Backup target already exists: {backup_path}")
    _copy_path(db_path, backup_path)
    logger.info("database backed up: %s -> %s", db_path, backup_path)


def restore_db(backup_path: Path, db_path: Path) -> None:
    if not backup_path.exists():
        raise FileNotFoundError(f"Backup not found: {backup_path}")
    if db_path.is_dir():
        shutil.rmtree(db_path)
    elif db_path.exists():
        db_path.unlink()
    _copy_path(backup_path, db_path)
    logger.info("database restored: %s -> %s", backup_path, db_path)


def seed_script(db_path: Path, script_id: str) -> bool:
    """为尚无图的剧本写入种子金字塔；已有图时不覆盖，返回是否写入。"""
    storage = GraphStorage(db_path=db_path)
    try:
        if storage.read_layers(script_id):
            logger.info("graph already exists, skip seeding: script_id=%s", script_id)
            return False
        storage.write_layers(script_id, generate_seed_layers(script_id))
        logger.info("seed graph written: script_id=%s", script_id)
        return True
    finally:
        storage.close()


def check_script(db_path: Path, script_id: str) -> dict[str, int]:
    storage = GraphStorage(db_path=db_path)
    try:
        graph = graph_from_layers(script_id, storage.read_layers(script_id))
    finally:
        storage.close()
    return graph.counts()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Seed, check, back up or restore the StoryFlow graph database."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    seed = subparsers.add_parser("seed", help="Write the seed graph for a script.")
    seed.add_argument("--db-path", required=True, help="Path to the Kuzu DB.")
    seed.add_argument("--script-id", required=True, help="Script id to seed.")

    check = subparsers.add_parser("check", help="Load a script graph and validate it.")
    check.add_argument("--db-path", required=True, help="Path to the Kuzu DB.")
    check.add_argument("--script-id", required=True, help="Script id to check.")

    backup = subparsers.add_parser("backup", help="Copy the DB to a backup path.")
    backup.add_argument("--db-path", required=True, help="Path to the Kuzu DB.")
    backup.add_argument("--backup-path", required=True, help="Path to the backup.")

    restore = subparsers.add_parser("restore", help="Restore DB from backup.")
    restore.add_argument("--db-path", required=True, help="Path to the Kuzu DB.")
    restore.add_argument("--backup-path", required=True, help="Path to the backup.")

    args = parser.parse_args(argv)
    db_path = Path(args.db_path)

    if args.command == "seed":
        written = seed_script(db_path, args.script_id)
        print("seeded" if written else "exists")
        return

    if args.command == "check":
        counts = check_script(db_path, args.script_id)
        print(
            f"layers={counts['layers']} nodes={counts['nodes']} "
            f"branches={counts['branches']}"
        )
        return

    if args.command == "backup":
        backup_db(db_path, Path(args.backup_path))
        return

    if args.command == "restore":
        restore_db(Path(args.backup_path), db_path)
        return

    raise RuntimeError(f"Unsupported command: {args.command}")


if __name__ == "__main__":
    main()
