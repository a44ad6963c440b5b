"""
Storage of labelled audio samples collected for voice model training
"""

import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Union

logger = logging.getLogger(__name__)


class TrainingSampleStore:
    """Appends {text, base64Audio} records to a JSON array file"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> List[Dict[str, str]]:
        if not self.path.exists():
            return []
        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"Training data file {self.path} does not hold a list")
        return data

    def append(self, text: str, base64_audio: str) -> int:
        """Add one sample and return the new sample count"""
        with self._lock:
            samples = self.load()
            samples.append({"text": text, "base64Audio": base64_audio})

            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(samples, f, indent=2)
            tmp_path.replace(self.path)

        logger.info(f"Saved training sample ({len(samples)} total) to {self.path}")
        return len(samples)

    def count(self) -> int:
        return len(self.load())
