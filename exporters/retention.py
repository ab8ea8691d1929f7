"""Retention sweep over dated snapshot directories."""

import logging
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

from dateutil.parser import isoparse

from models import SweepResult


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def snapshot_dir_name(now: Optional[datetime] = None) -> str:
    """Directory name of the snapshot taken at ``now`` (UTC calendar date)."""
    return (now or utc_now()).astimezone(timezone.utc).strftime('%Y-%m-%d')


class RetentionSweeper:
    """Deletes snapshot directories older than the retention window. Never raises."""

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            clock: Returns the current timezone-aware time
            logger: Logger instance
        """
        self.clock = clock
        self.logger = logger or logging.getLogger('confluence_offline_copy.retention')

    def parse_snapshot_date(self, name: str) -> Optional[datetime]:
        """
        Interpret a directory name as a date (midnight UTC unless it carries an offset).

        Args:
            name: Directory name, e.g. "2024-01-31"

        Returns:
            Timezone-aware datetime, or None if the name is not a date
        """
        try:
            parsed = isoparse(name)
        except (ValueError, OverflowError, TypeError):
            return None

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def prune(
        self,
        root: Path,
        retention_days: float,
        now: Optional[datetime] = None,
        protected: Iterable[str] = ()
    ) -> SweepResult:
        """
        Delete every dated subdirectory of ``root`` older than ``retention_days``.

        A directory is pruned when ``now - date > retention_days * 24h``;
        one exactly at the boundary is kept. Names that are not dates are
        skipped. Errors are logged and the sweep moves on to the next entry.

        Args:
            root: Snapshot root (the configured output directory)
            retention_days: Maximum age in days
            now: Reference time (defaults to the clock)
            protected: Directory names that are always kept (e.g., the current snapshot)

        Returns:
            SweepResult listing pruned, kept and skipped entries and errors
        """
        result = SweepResult()
        now = now or self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        root = Path(root)
        protected = set(protected)

        try:
            max_age = timedelta(days=retention_days)
        except (OverflowError, ValueError, TypeError) as e:
            self.logger.warning(f"Retention of {retention_days} day(s) is unbounded ({e}), nothing to prune")
            max_age = None

        self.logger.info(f"Pruning exports older than {retention_days} day(s) in {root}...")

        try:
            entries = sorted(p for p in root.iterdir() if p.is_dir())
        except FileNotFoundError:
            self.logger.info(f"Snapshot root {root} does not exist yet, nothing to prune")
            return result
        except OSError as e:
            self.logger.error(f"Could not list snapshot root {root}: {e}")
            result.errors.append(f"{root}: {e}")
            return result

        for entry in entries:
            snapshot_date = self.parse_snapshot_date(entry.name)
            if snapshot_date is None:
                self.logger.debug(f"Skipping '{entry.name}': not a dated snapshot directory")
                result.skipped.append(entry.name)
                continue

            age = now - snapshot_date
            self.logger.debug(f"Snapshot '{entry.name}': age {age}, max age {max_age}")

            if max_age is None or age <= max_age or entry.name in protected:
                result.kept.append(entry.name)
                continue

            try:
                shutil.rmtree(entry)
            except FileNotFoundError:
                pass
            except OSError as e:
                self.logger.error(f"Failed to prune {entry}: {e}")
                result.errors.append(f"{entry.name}: {e}")
                continue

            result.pruned.append(entry.name)
            self.logger.info(f"Pruned old directory {entry.name}")

        return result


__all__ = ['RetentionSweeper', 'snapshot_dir_name', 'utc_now']
