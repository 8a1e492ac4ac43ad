"""Installed-app inventory with fuzzy lookup from display name to package."""

import sys
from dataclasses import dataclass

from thefuzz import fuzz

_PREFIXES = {"com", "org", "net", "io", "tv", "me", "cn", "jp", "de", "uk", "co"}
_GENERIC = {"android", "app", "apps", "mobile", "client", "lite", "main", "music", "phone", "launcher"}


def _log(msg: str) -> None:
    print(f"[apps] {msg}", file=sys.stderr)


@dataclass(frozen=True)
class AppInfo:
    name: str
    package: str
    is_system: bool = False


def display_name(package: str) -> str:
    """Best-effort readable name from a package id (com.spotify.music -> Spotify)."""
    segments = [s for s in package.split(".") if s]
    meaningful = [s for s in segments if s.lower() not in _PREFIXES and s.lower() not in _GENERIC]
    chosen = meaningful[-1] if meaningful else (segments[-1] if segments else package)
    return chosen[:1].upper() + chosen[1:]


class AppScanner:
    """Lists apps through the device controller and resolves app names."""

    def __init__(self, controller, threshold: int = 70):
        self.controller = controller
        self.threshold = threshold
        self._apps: list[AppInfo] | None = None

    def list_apps(self, refresh: bool = False) -> list[AppInfo]:
        if self._apps is None or refresh:
            apps = [AppInfo(display_name(p), p, False) for p in self.controller.list_packages(system=False)]
            apps += [AppInfo(display_name(p), p, True) for p in self.controller.list_packages(system=True)]
            _log(f"Scanned {len(apps)} packages")
            self._apps = apps
        return self._apps

    def user_app_names(self, limit: int) -> list[str]:
        """Names of non-system apps, capped to keep prompts short."""
        return [app.name for app in self.list_apps() if not app.is_system][:limit]

    def find_package(self, name: str) -> str | None:
        query = name.strip()
        if not query:
            return None
        apps = self.list_apps()
        lowered = query.lower()
        for app in apps:
            if app.package.lower() == lowered or app.name.lower() == lowered:
                return app.package

        best: AppInfo | None = None
        best_score = 0
        for app in apps:
            score = max(fuzz.ratio(lowered, app.name.lower()), fuzz.partial_ratio(lowered, app.package.lower()))
            # Prefer user apps on ties.
            if score > best_score or (score == best_score and best is not None and best.is_system and not app.is_system):
                best, best_score = app, score
        if best is not None and best_score >= self.threshold:
            _log(f"find_package: '{name}' -> {best.package} (score={best_score})")
            return best.package
        _log(f"find_package: '{name}' -> no match above {self.threshold} (best={best_score})")
        return None
