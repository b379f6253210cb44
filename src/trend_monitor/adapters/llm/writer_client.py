"""External LLM digest writer driven through its CLI.

The writer CLI reads a process-wide default model, so switching models for one
call is guarded by an exclusive file lock (``ModelSwitchLease``): acquire the
lock, remember the current default, switch to the target, run the agent, then
restore the original default and release the lock, whatever happened.
"""

import asyncio
import fcntl
import json
import os
import re
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol, Union

from loguru import logger

from trend_monitor.config import ModelStageConfig, WriterConfig
from trend_monitor.core.entities import WriterExecution
from trend_monitor.core.errors import LockTimeoutError, WriterError
from trend_monitor.core.outcome import Fallback, Ok

DEFAULT_WRITER_COMMAND = "openclaw"
LOCK_POLL_INTERVAL = 0.2
LOCK_TIMEOUT_MARGIN = 60.0
MODEL_LIST_TIMEOUT = 45.0
MODEL_SWITCH_TIMEOUT = 30.0
DOCKER_INSPECT_TIMEOUT = 5.0


@dataclass
class WriterBackend:
    """argv prefix that launches the writer CLI."""

    argv: list[str]
    label: str


@dataclass
class WriterOutput:
    """Digest text produced by the writer, with how it was produced."""

    text: str
    execution: WriterExecution


class WriterCli(Protocol):
    label: str

    async def run(self, args: list[str], timeout: float) -> str: ...


class SubprocessWriterCli:
    """Run writer CLI commands as subprocesses with a bounded timeout."""

    def __init__(self, backend: WriterBackend) -> None:
        self.backend = backend
        self.label = backend.label

    async def run(self, args: list[str], timeout: float) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.backend.argv,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise WriterError("writer_backend_missing", str(e)) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise WriterError("writer_timeout", f"{args[0]} exceeded {timeout:.0f}s") from None

        out = stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            err = stderr.decode("utf-8", errors="replace").strip()
            raise WriterError("writer_failed", err or out.strip() or f"exit:{proc.returncode}")
        return out


async def _container_running(name: str) -> bool:
    if not shutil.which("docker"):
        return False
    try:
        proc = await asyncio.create_subprocess_exec(
            "docker", "inspect", "--format", "{{.State.Running}}", name,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=DOCKER_INSPECT_TIMEOUT)
    except (OSError, asyncio.TimeoutError):
        return False
    return proc.returncode == 0 and stdout.decode().strip() == "true"


async def resolve_backend(config: WriterConfig) -> Optional[WriterBackend]:
    """Locate the writer CLI: explicit command, local binary, then a running container."""
    command = config.command or [DEFAULT_WRITER_COMMAND]
    executable = shutil.which(command[0])
    if executable:
        return WriterBackend(argv=[executable, *command[1:]], label=f"local:{executable}")

    if config.container and await _container_running(config.container):
        return WriterBackend(
            argv=["docker", "exec", config.container, *command],
            label=f"docker:{config.container}",
        )
    return None


def parse_json_from_stdout(raw: str) -> Optional[Any]:
    """Parse the whole output as JSON, else the last line that is valid JSON."""
    text = (raw or "").strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    for line in reversed([l.strip() for l in text.splitlines() if l.strip()]):
        try:
            return json.loads(line)
        except json.JSONDecodeError:
            continue
    return None


def extract_agent_text(doc: Any) -> str:
    result = doc.get("result") if isinstance(doc, dict) else None
    if not isinstance(result, dict):
        return ""
    for payload in result.get("payloads") or []:
        text = str((payload or {}).get("text") or "").strip() if isinstance(payload, dict) else ""
        if text:
            return text
    return str(result.get("text") or "").strip()


def extract_agent_model(doc: Any) -> str:
    try:
        return str(doc["result"]["meta"]["agentMeta"]["model"] or "").strip()
    except (KeyError, TypeError):
        return ""


def _fix_json(text: str) -> str:
    """Drop trailing commas before closing brackets."""
    return re.sub(r",(\s*[}\]])", r"\1", text)


def extract_json_object(text: str) -> Optional[dict]:
    """Find a JSON object in model output using progressively looser strategies."""
    raw = (text or "").strip()
    candidates = [raw]

    fenced = re.search(r"```(?:json)?\s*(.*?)\s*```", raw, re.DOTALL | re.IGNORECASE)
    if fenced:
        candidates.append(fenced.group(1).strip())

    first, last = raw.find("{"), raw.rfind("}")
    if first >= 0 and last > first:
        candidates.append(raw[first:last + 1])

    for candidate in candidates:
        for attempt in (candidate, _fix_json(candidate)):
            try:
                parsed = json.loads(attempt)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed
    return None


def normalize_digest_text(text: str, depth: int = 0) -> str:
    """Pull ``digest`` out of a JSON reply, or strip code fences from plain text."""
    raw = (text or "").strip()
    if not raw:
        return ""

    parsed = extract_json_object(raw)
    if parsed is not None and depth < 3:
        digest = str(parsed.get("digest") or "").strip()
        if digest:
            return digest
        nested = extract_agent_text(parsed) or str(parsed.get("output_text") or "").strip()
        if nested:
            return normalize_digest_text(nested, depth + 1)

    raw = re.sub(r"^```(?:json|markdown|md|text)?\s*", "", raw, flags=re.IGNORECASE)
    return re.sub(r"\s*```$", "", raw).strip()


def provider_of(model: str) -> str:
    return model.split("/", 1)[0] if "/" in model else ""


class ModelSwitchLock:
    """Exclusive inter-process lock on a lock file (``flock``), polled with backoff."""

    def __init__(self, path: Path, timeout: float, poll_interval: float = LOCK_POLL_INTERVAL) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._handle = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def _try_lock(self) -> bool:
        handle = open(self.path, "a+")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            handle.close()
            return False

        # The previous holder unlinks the file on release; a lock on a stale inode is no lock
        try:
            current = os.stat(self.path)
        except FileNotFoundError:
            current = None
        if current is None or current.st_ino != os.fstat(handle.fileno()).st_ino:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            handle.close()
            return False

        handle.seek(0)
        handle.truncate()
        handle.write(f"{os.getpid()}\n")
        handle.flush()
        self._handle = handle
        return True

    async def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + self.timeout
        waited = False
        while not self._try_lock():
            if time.monotonic() >= deadline:
                raise LockTimeoutError(self.path, self.timeout)
            if not waited:
                logger.warning(f"Waiting for model switch lock {self.path}")
                waited = True
            await asyncio.sleep(self.poll_interval)

    def release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            self.path.unlink(missing_ok=True)
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            handle.close()


class ModelControl:
    """Model list/status/set commands of the writer CLI."""

    def __init__(self, cli: WriterCli, timeout: float) -> None:
        self.cli = cli
        self.timeout = timeout

    async def list_models(self, provider: str) -> list[str]:
        args = ["models", "list", "--all", "--plain"]
        if provider:
            args[3:3] = ["--provider", provider]
        out = await self.cli.run(args, min(self.timeout, MODEL_LIST_TIMEOUT))
        return [line.strip() for line in out.splitlines() if line.strip()]

    async def get_default(self) -> str:
        return (await self.cli.run(["models", "status", "--plain"], min(self.timeout, MODEL_SWITCH_TIMEOUT))).strip()

    async def set_default(self, model: str) -> None:
        await self.cli.run(["models", "set", model], min(self.timeout, MODEL_SWITCH_TIMEOUT))


class ModelSwitchLease:
    """Hold the lock with ``target`` as the default model; restore on exit."""

    def __init__(self, lock: ModelSwitchLock, control: ModelControl, target: str) -> None:
        self.lock = lock
        self.control = control
        self.target = target
        self.previous = ""
        self.switched = False
        self.available: list[str] = []

    async def __aenter__(self) -> "ModelSwitchLease":
        await self.lock.acquire()
        try:
            self.available = await self.control.list_models(provider_of(self.target))
            if self.available and self.target not in self.available:
                raise WriterError(f"model_not_available:{self.target}")

            self.previous = await self.control.get_default()
            if self.target and self.previous and self.previous != self.target:
                await self.control.set_default(self.target)
                self.switched = True
        except BaseException:
            await self._restore()
            self.lock.release()
            raise
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        try:
            await self._restore()
        finally:
            self.lock.release()

    async def _restore(self) -> None:
        if not (self.switched and self.previous):
            return
        try:
            await self.control.set_default(self.previous)
            self.switched = False
        except WriterError as e:
            logger.error(f"Could not restore default model {self.previous}: {e}")


class DigestWriterClient:
    """Produce digest text with the external writer, or report why not."""

    def __init__(
        self,
        config: WriterConfig,
        lock_path: Path,
        cli: Optional[WriterCli] = None,
        lock_poll_interval: float = LOCK_POLL_INTERVAL,
    ) -> None:
        self.config = config
        self.lock_path = Path(lock_path)
        self.cli = cli
        self.lock_poll_interval = lock_poll_interval

    async def _resolve_cli(self) -> Optional[WriterCli]:
        if self.cli is None:
            backend = await resolve_backend(self.config)
            if backend is not None:
                self.cli = SubprocessWriterCli(backend)
        return self.cli

    async def generate(
        self,
        prompt: str,
        stage: ModelStageConfig,
        timeout: float,
        enabled: bool = True,
    ) -> Union[Ok[WriterOutput], Fallback]:
        if not enabled or not self.config.enabled:
            return Fallback("model_writer_disabled", {"mode": "disabled"})

        cli = await self._resolve_cli()
        if cli is None:
            return Fallback("writer_backend_missing", {"mode": "fallback"})

        lock = ModelSwitchLock(self.lock_path, timeout + LOCK_TIMEOUT_MARGIN, self.lock_poll_interval)
        lease = ModelSwitchLease(lock, ModelControl(cli, timeout), stage.model)
        session_id = f"news-digest-writer-{int(time.time() * 1000)}-{uuid.uuid4().hex[:5]}"
        detail: dict[str, Any] = {"mode": "fallback", "backend": cli.label, "model": stage.model}

        try:
            async with lease:
                started = time.monotonic()
                out = await cli.run(
                    [
                        "agent",
                        "--session-id", session_id,
                        "--message", prompt,
                        "--thinking", stage.reasoning,
                        "--json",
                    ],
                    timeout,
                )
                elapsed_ms = int((time.monotonic() - started) * 1000)
        except LockTimeoutError as e:
            logger.warning(f"Digest writer skipped: {e}")
            return Fallback("lock_timeout", detail)
        except WriterError as e:
            logger.warning(f"Digest writer failed: {e}")
            if lease.available:
                detail["available_models"] = lease.available
            return Fallback(e.reason, detail)

        doc = parse_json_from_stdout(out)
        if doc is None:
            return Fallback("unparsable_writer_output", detail)

        agent_text = extract_agent_text(doc)
        if not agent_text and isinstance(doc, dict):
            agent_text = str(doc.get("digest") or doc.get("output_text") or "")
        text = normalize_digest_text(agent_text)
        if not text:
            return Fallback("empty_model_output", {**detail, "session_id": session_id})

        return Ok(WriterOutput(
            text=text,
            execution=WriterExecution(
                ok=True,
                mode="llm",
                model=stage.model,
                used_model=extract_agent_model(doc) or stage.model,
                alias=stage.alias,
                reasoning=stage.reasoning,
                backend=cli.label,
                elapsed_ms=elapsed_ms,
                session_id=session_id,
            ),
        ))
