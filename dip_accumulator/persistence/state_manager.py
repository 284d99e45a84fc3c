"""
JSON file store for strategy definitions and positions.
"""

import json
import logging
import os
import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional, List

from ..execution.interfaces import StrategyStore
from ..models import StrategyState

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class JsonStrategyStore(StrategyStore):
    """Persists one JSON file per strategy with backup and corruption recovery."""

    STATE_SUFFIX = ".json"
    BACKUP_SUFFIX = ".backup"

    def __init__(self, state_dir: Optional[str] = None):
        """
        Initialize the store with specified directory.

        Args:
            state_dir: Directory for state files. If None, uses default location.
        """
        if state_dir is None:
            state_dir = os.path.join(os.path.expanduser("~"), ".dip_accumulator", "state")

        self._state_dir = Path(state_dir)
        self._state_dir.mkdir(parents=True, exist_ok=True)

        logger.debug(f"JsonStrategyStore initialized with directory: {self._state_dir}")

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    def get_state_file_path(self, strategy_id: str) -> Path:
        """Get the path to a strategy's state file."""
        return self._state_dir / f"{_UNSAFE_CHARS.sub('_', strategy_id)}{self.STATE_SUFFIX}"

    def get_backup_file_path(self, strategy_id: str) -> Path:
        """Get the path to a strategy's backup state file."""
        state_file = self.get_state_file_path(strategy_id)
        return state_file.with_name(state_file.name + self.BACKUP_SUFFIX)

    def save(self, state: StrategyState) -> bool:
        """
        Save strategy state to persistent storage.

        Args:
            state: The strategy state to save

        Returns:
            bool: True if save was successful, False otherwise
        """
        state_file = self.get_state_file_path(state.strategy_id)
        backup_file = self.get_backup_file_path(state.strategy_id)

        try:
            state_dict = state.model_dump(mode='json')

            # Keep the previous version around for recovery
            if state_file.exists():
                shutil.copy2(state_file, backup_file)

            temp_file = state_file.with_suffix('.tmp')
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(state_dict, f, indent=2, default=str)

            temp_file.replace(state_file)

            logger.debug(f"Saved state for {state.strategy_id} to {state_file}")
            return True

        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save state for {state.strategy_id}: {e}")
            return False

    def load(self, strategy_id: str) -> Optional[StrategyState]:
        """
        Load a strategy's state, falling back to its backup.

        Args:
            strategy_id: Strategy to load

        Returns:
            StrategyState, or None if neither file is usable
        """
        state_file = self.get_state_file_path(strategy_id)
        backup_file = self.get_backup_file_path(strategy_id)

        state = self._load_state_from_file(state_file)

        if state is None and backup_file.exists():
            logger.warning(f"State file for {strategy_id} corrupted or missing, attempting to load from backup")
            state = self._load_state_from_file(backup_file)

            if state is not None:
                logger.info(f"Recovered state for {strategy_id} from backup file")
                self.save(state)

        return state

    def load_all(self) -> List[StrategyState]:
        """Load every strategy found in the state directory."""
        states = []
        seen = set()
        for path in sorted(self._state_dir.glob(f"*{self.STATE_SUFFIX}*")):
            if not (path.name.endswith(self.STATE_SUFFIX) or path.name.endswith(self.STATE_SUFFIX + self.BACKUP_SUFFIX)):
                continue
            strategy_key = path.name.split(self.STATE_SUFFIX)[0]
            if strategy_key in seen:
                continue
            seen.add(strategy_key)

            state = self.load(strategy_key)
            if state is not None:
                states.append(state)

        logger.info(f"Loaded {len(states)} strategies from {self._state_dir}")
        return states

    def delete(self, strategy_id: str) -> bool:
        """Remove a strategy's state and backup files."""
        removed = False
        for path in (self.get_state_file_path(strategy_id), self.get_backup_file_path(strategy_id)):
            try:
                path.unlink()
                removed = True
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"Failed to remove {path}: {e}")
                return False
        return removed

    def _load_state_from_file(self, file_path: Path) -> Optional[StrategyState]:
        """
        Load state from a specific file.

        Args:
            file_path: Path to the state file

        Returns:
            StrategyState or None if loading failed
        """
        if not file_path.exists():
            logger.debug(f"State file does not exist: {file_path}")
            return None

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                state_dict = json.load(f)

            state = StrategyState.model_validate(state_dict)
            logger.debug(f"Loaded strategy state from {file_path}")
            return state

        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in state file {file_path}: {e}")
            self._handle_corrupted_file(file_path)
            return None

        except Exception as e:
            logger.error(f"Failed to load state from {file_path}: {e}")
            self._handle_corrupted_file(file_path)
            return None

    def _handle_corrupted_file(self, file_path: Path) -> None:
        """
        Handle a corrupted state file by moving it aside.

        Args:
            file_path: Path to the corrupted file
        """
        try:
            corrupted_backup = file_path.with_name(
                f"{file_path.name}.corrupted.{datetime.now().strftime('%Y%m%d_%H%M%S')}"
            )
            shutil.move(file_path, corrupted_backup)
            logger.warning(f"Moved corrupted state file to {corrupted_backup}")
        except OSError as e:
            logger.error(f"Failed to backup corrupted file {file_path}: {e}")
