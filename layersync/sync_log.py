import json
from datetime import datetime, timezone
from typing import List

from layersync.file_store import FileStore

LOG_KEY = ".install-log.jsonl"


def append_event(store: FileStore, stage: str, message: str, **kwargs) -> None:
    event = {"ts": datetime.now(timezone.utc).isoformat(), "stage": stage, "message": message}
    if kwargs:
        event["meta"] = kwargs
    store.append_text(LOG_KEY, json.dumps(event, ensure_ascii=True) + "\n")


def read_events(store: FileStore) -> List[dict]:
    if not store.exists(LOG_KEY):
        return []
    return [json.loads(line) for line in store.read_text(LOG_KEY).splitlines() if line.strip()]
