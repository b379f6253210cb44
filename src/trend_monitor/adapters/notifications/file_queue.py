"""File inbox consumed by a separate delivery worker."""

import json
import os
import re
import secrets
import time
from pathlib import Path
from typing import Any, Optional

from trend_monitor.core.interfaces import MessageQueue
from trend_monitor.core.timeutils import to_iso, utc_now

INBOX_LOG = "inbox.jsonl"
INBOX_LATEST = "inbox.json"


def make_task_id(prefix: str = "task") -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def make_ack_id(seed: str = "") -> str:
    stamp = format(int(time.time() * 1000), "x")[-4:]
    tail = re.sub(r"[^a-zA-Z0-9]", "", seed)[-4:].lower()
    return f"{stamp}{tail}{secrets.token_hex(1)}"[:10]


class FileQueue(MessageQueue):
    """Append to ``inbox.jsonl`` and atomically replace ``inbox.json``."""

    def __init__(self, queue_dir: Path, prefix: str = "news") -> None:
        self.queue_dir = Path(queue_dir)
        self.prefix = prefix

    def enqueue(self, text: str, task_id: Optional[str] = None) -> dict[str, Any]:
        task_id = task_id or make_task_id(self.prefix)
        payload = {
            "taskId": task_id,
            "command": f"[NOTIFY] {text}",
            "timestamp": to_iso(utc_now()),
            "status": "pending",
            "ackId": make_ack_id(task_id),
        }

        self.queue_dir.mkdir(parents=True, exist_ok=True)
        with open(self.queue_dir / INBOX_LOG, "a", encoding="utf-8") as f:
            f.write(json.dumps(payload, ensure_ascii=False) + "\n")

        latest = self.queue_dir / INBOX_LATEST
        tmp_path = latest.with_name(f"{INBOX_LATEST}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, latest)
        return payload
