"""
Environment snapshot: the tracker's only window onto the page.

Everything the browser would provide ambiently (navigator, screen, scroll
position, location, listeners) goes through this protocol, so the profiler,
recorder and emitter run the same against a real page bridge or the
SimulatedEnvironment used headless and in tests.

Signals:
  click              handler(target: Element | None, x: int, y: int)
  scroll             handler()
  unload             handler()
  visibility_hidden  handler()
"""

from dataclasses import dataclass, field
from typing import Callable, Protocol

from sitepulse.core.device import ScreenMetrics

SIGNALS = ("click", "scroll", "unload", "visibility_hidden")

INTERACTIVE_TAGS = {"button", "a"}
CLICKABLE_CLASS = "clickable"


@dataclass(frozen=True)
class ScrollMetrics:
    scroll_top: float
    scroll_height: float
    client_height: float


@dataclass(frozen=True)
class Location:
    path: str = "/"
    query_string: str = ""


@dataclass
class Element:
    """Minimal DOM node: enough to resolve an interactive ancestor."""
    tag: str
    id: str | None = None
    class_name: str = ""
    text: str = ""
    role: str | None = None
    parent: "Element | None" = None

    @property
    def classes(self) -> list[str]:
        return self.class_name.split()

    def is_interactive(self) -> bool:
        return (
            self.tag.lower() in INTERACTIVE_TAGS
            or self.role == "button"
            or CLICKABLE_CLASS in self.classes
        )

    def closest_interactive(self) -> "Element | None":
        node: Element | None = self
        while node is not None:
            if node.is_interactive():
                return node
            node = node.parent
        return None


class Environment(Protocol):
    def get_user_agent(self) -> str: ...

    def get_screen_metrics(self) -> ScreenMetrics: ...

    def get_scroll_metrics(self) -> ScrollMetrics: ...

    def get_timezone(self) -> str: ...

    def get_location(self) -> Location: ...

    def get_referrer(self) -> str | None: ...

    def add_listener(self, signal: str, handler: Callable) -> Callable[[], None]:
        """Register handler; returns the matching remove callback."""
        ...


@dataclass
class SimulatedEnvironment:
    """In-process page: mutable metrics plus a listener registry."""
    user_agent: str = ""
    screen: ScreenMetrics = field(default_factory=lambda: ScreenMetrics(1920, 1080, 24))
    scroll: ScrollMetrics = field(default_factory=lambda: ScrollMetrics(0, 0, 0))
    timezone: str = "UTC"
    location: Location = field(default_factory=Location)
    referrer: str | None = None
    listeners: dict[str, list[Callable]] = field(default_factory=dict)

    def get_user_agent(self) -> str:
        return self.user_agent

    def get_screen_metrics(self) -> ScreenMetrics:
        return self.screen

    def get_scroll_metrics(self) -> ScrollMetrics:
        return self.scroll

    def get_timezone(self) -> str:
        return self.timezone

    def get_location(self) -> Location:
        return self.location

    def get_referrer(self) -> str | None:
        return self.referrer

    def add_listener(self, signal: str, handler: Callable) -> Callable[[], None]:
        if signal not in SIGNALS:
            raise ValueError(f"Unknown signal: {signal}")
        self.listeners.setdefault(signal, []).append(handler)

        def remove() -> None:
            handlers = self.listeners.get(signal, [])
            if handler in handlers:
                handlers.remove(handler)

        return remove

    def listener_count(self, signal: str | None = None) -> int:
        if signal is not None:
            return len(self.listeners.get(signal, []))
        return sum(len(h) for h in self.listeners.values())

    # --- Page simulation ---

    def dispatch(self, signal: str, *args) -> None:
        for handler in list(self.listeners.get(signal, [])):
            handler(*args)

    def scroll_to(self, scroll_top: float, scroll_height: float | None = None, client_height: float | None = None) -> None:
        self.scroll = ScrollMetrics(
            scroll_top=scroll_top,
            scroll_height=self.scroll.scroll_height if scroll_height is None else scroll_height,
            client_height=self.scroll.client_height if client_height is None else client_height,
        )
        self.dispatch("scroll")

    def click(self, target: Element | None, x: int = 0, y: int = 0) -> None:
        self.dispatch("click", target, x, y)

    def unload(self) -> None:
        self.dispatch("unload")

    def hide(self) -> None:
        self.dispatch("visibility_hidden")
