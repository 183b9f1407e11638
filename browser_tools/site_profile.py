from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple


class SelectorCatalog:
    """Semantic role -> ordered locator candidates. Order is priority; first match wins."""

    def __init__(self, roles: Optional[Mapping[str, Iterable[str]]] = None):
        self._roles = MappingProxyType({
            role: tuple(candidates or ()) for role, candidates in (roles or {}).items()
        })

    def get(self, role: str) -> Tuple[str, ...]:
        return self._roles.get(role, ())

    def __getitem__(self, role: str) -> Tuple[str, ...]:
        return self.get(role)

    def __contains__(self, role) -> bool:
        return role in self._roles

    def merged(self, overrides: Mapping[str, Iterable[str]]) -> "SelectorCatalog":
        data = dict(self._roles)
        data.update({role: tuple(c) for role, c in overrides.items()})
        return SelectorCatalog(data)

    def to_dict(self) -> Dict[str, list]:
        return {role: list(c) for role, c in self._roles.items()}

    def __eq__(self, other):
        return isinstance(other, SelectorCatalog) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"SelectorCatalog({self.to_dict()!r})"


@dataclass(frozen=True)
class BrowserDefaults:
    engine: str = "chromium"
    headless: bool = False
    locale: str = "en-US"
    user_agent: Optional[str] = None
    viewport: Tuple[int, int] = (1280, 800)
    launch_args: Tuple[str, ...] = (
        "--disable-blink-features=AutomationControlled",
        "--disable-dev-shm-usage",
        "--no-first-run",
        "--no-default-browser-check",
    )
    slow_mo: int = 50

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BrowserDefaults":
        data = dict(data or {})
        if "viewport" in data:
            vp = data["viewport"]
            data["viewport"] = (vp["width"], vp["height"]) if isinstance(vp, dict) else tuple(vp)
        if "launch_args" in data:
            data["launch_args"] = tuple(data["launch_args"])
        valid = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in data.items() if k in valid})


@dataclass(frozen=True)
class AntiStallConfig:
    scroll: bool = True
    refocus: bool = True
    jitter: bool = True
    stall_after: float = 15.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AntiStallConfig":
        data = data or {}
        valid = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in data.items() if k in valid})


@dataclass(frozen=True)
class SiteProfile:
    """Immutable per-target configuration. Target-specific behavior lives here as data."""
    target_id: str
    base_url: str
    kind: str = "job_board"
    search_url: str = ""
    selectors: SelectorCatalog = field(default_factory=SelectorCatalog)
    browser: BrowserDefaults = field(default_factory=BrowserDefaults)
    anti_stall: AntiStallConfig = field(default_factory=AntiStallConfig)
    additional_stall_indicators: Tuple[str, ...] = ()
    completion_timeout: float = 120.0
    name: str = ""

    @property
    def display_name(self) -> str:
        return self.name or self.target_id

    @classmethod
    def from_dict(cls, target_id: str, data: Dict[str, Any]) -> "SiteProfile":
        return cls(
            target_id=target_id,
            base_url=data["base_url"],
            kind=data.get("kind", "job_board"),
            search_url=data.get("search_url", ""),
            selectors=SelectorCatalog(data.get("selectors")),
            browser=BrowserDefaults.from_dict(data.get("browser")),
            anti_stall=AntiStallConfig.from_dict(data.get("anti_stall")),
            additional_stall_indicators=tuple(data.get("additional_stall_indicators", ())),
            completion_timeout=float(data.get("completion_timeout", 120.0)),
            name=data.get("name", ""),
        )
