"""
StreamWorld — Store Interfaces

The subsystem stores the World drives during boot and shutdown. The real
implementations (wallet RPC, content catalogue, streaming transport) live
outside the core; the in-memory implementations here back the development
composition root and the tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from streamworld.primitives.common import new_id, utc_now


# ─── Protocols ────────────────────────────────────────────────────────


@runtime_checkable
class ConfigStore(Protocol):
    def set_initialized(self) -> None: ...


@runtime_checkable
class MetaStore(Protocol):
    async def load_meta_analysis(self) -> None: ...


@runtime_checkable
class ThemeStore(Protocol):
    def get_dark_mode(self) -> bool: ...

    def set_dark_mode(self, enabled: bool) -> None: ...

    def apply_theme(self, dark: bool) -> None: ...


@runtime_checkable
class WalletStore(Protocol):
    @property
    def is_connected(self) -> bool: ...

    async def connect_wallet(self) -> None: ...

    async def disconnect_wallet(self) -> None: ...

    async def refresh_balance(self) -> None: ...


@runtime_checkable
class UserStore(Protocol):
    async def load_profile(self) -> None: ...


@runtime_checkable
class ContentStore(Protocol):
    async def load_featured_content(self) -> None: ...


@runtime_checkable
class StreamingStore(Protocol):
    async def initialize(self) -> None: ...

    async def cleanup_streams(self) -> None: ...


@dataclass
class Stores:
    """Every collaborator the World needs, injected together."""

    config: ConfigStore
    meta: MetaStore
    theme: ThemeStore
    wallet: WalletStore
    user: UserStore
    content: ContentStore
    streaming: StreamingStore


# ─── In-memory implementations ────────────────────────────────────────


class MemoryConfigStore:
    def __init__(self) -> None:
        self.initialized = False

    def set_initialized(self) -> None:
        self.initialized = True


class MemoryMetaStore:
    def __init__(self, analysis: dict[str, Any] | None = None) -> None:
        self._source = analysis or {}
        self.analysis: dict[str, Any] | None = None

    async def load_meta_analysis(self) -> None:
        self.analysis = dict(self._source)


class FileThemeStore:
    """Persists the dark-mode flag in a small text file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self.applied: bool | None = None

    def get_dark_mode(self) -> bool:
        if not self._path.exists():
            return False
        return self._path.read_text(encoding="utf-8").strip() == "true"

    def set_dark_mode(self, enabled: bool) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text("true" if enabled else "false", encoding="utf-8")

    def apply_theme(self, dark: bool) -> None:
        self.applied = dark


class MemoryThemeStore:
    def __init__(self, dark_mode: bool = False) -> None:
        self._dark_mode = dark_mode
        self.applied: bool | None = None

    def get_dark_mode(self) -> bool:
        return self._dark_mode

    def set_dark_mode(self, enabled: bool) -> None:
        self._dark_mode = enabled

    def apply_theme(self, dark: bool) -> None:
        self.applied = dark


class MemoryWalletStore:
    def __init__(self, address: str | None = None, balance: float = 0.0) -> None:
        self.address = address
        self.balance = balance
        self.refresh_count = 0
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect_wallet(self) -> None:
        if self.address is None:
            self.address = f"0x{new_id().lower()}"
        self._connected = True

    async def disconnect_wallet(self) -> None:
        self._connected = False

    async def refresh_balance(self) -> None:
        self.refresh_count += 1


class MemoryUserStore:
    def __init__(self) -> None:
        self.profile: dict[str, Any] | None = None

    async def load_profile(self) -> None:
        self.profile = {"loaded_at": utc_now().isoformat()}


class MemoryContentStore:
    def __init__(self, featured: list[dict[str, Any]] | None = None) -> None:
        self._source = featured or []
        self.featured: list[dict[str, Any]] = []

    async def load_featured_content(self) -> None:
        self.featured = list(self._source)


@dataclass
class MemoryStreamingStore:
    active_streams: list[str] = field(default_factory=list)
    initialized: bool = False

    async def initialize(self) -> None:
        self.initialized = True

    async def cleanup_streams(self) -> None:
        self.active_streams.clear()
        self.initialized = False


def memory_stores(dark_mode: bool = False) -> Stores:
    """A fully in-memory store bundle."""
    return Stores(
        config=MemoryConfigStore(),
        meta=MemoryMetaStore(),
        theme=MemoryThemeStore(dark_mode=dark_mode),
        wallet=MemoryWalletStore(),
        user=MemoryUserStore(),
        content=MemoryContentStore(),
        streaming=MemoryStreamingStore(),
    )
