from __future__ import annotations

import argparse

from app.db import SessionLocal
from app.services.photo_service import purge_expired_photos, remove_photo_files


def cleanup(*, photo_dir: str | None = None, dry_run: bool = False) -> tuple[int, int]:
    with SessionLocal() as db:
        file_names = purge_expired_photos(db)
        if dry_run:
            db.rollback()
            return len(file_names), 0
        db.commit()
    return len(file_names), remove_photo_files(file_names, photo_dir=photo_dir)


def main() -> None:
    parser = argparse.ArgumentParser(description='Delete report photos past their retention date.')
    parser.add_argument('--photo-dir', help='Directory holding photo files. Defaults to PHOTO_DIR.')
    parser.add_argument('--dry-run', action='store_true', help='Report expired photos without deleting them.')
    args = parser.parse_args()

    rows, files = cleanup(photo_dir=args.photo_dir, dry_run=args.dry_run)
    print(f'Photo cleanup complete: rows={rows} files={files} dry_run={args.dry_run}')


if __name__ == '__main__':
    main()
