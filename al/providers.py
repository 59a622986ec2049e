# al/providers.py
"""
Package manager providers
- Provider: closed interface (name, check_installed, install/uninstall)
- brew / mas / manual implementations, all synchronous subprocesses
  inheriting stdio, never retried
- small registry so the CLI picks a provider by name without string switches
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Callable, Dict, List

from .errors import ValidationError
from .utils import CommandError, log_info, log_success, safe_run


class Provider(ABC):
    name: str = ""

    @abstractmethod
    def check_installed(self) -> bool:
        """True when the package manager itself is available."""

    @abstractmethod
    def install_package(self, package_id: str) -> None: ...

    @abstractmethod
    def uninstall_package(self, package_id: str) -> None: ...


class _CommandProvider(Provider):
    """Provider driven by one executable: `<exe> install|uninstall <id>`."""
    executable: str = ""
    version_args: List[str] = []

    def check_installed(self) -> bool:
        try:
            rc, _, _ = safe_run([self.executable, *self.version_args], capture=True, check=False)
        except CommandError:
            return False
        return rc == 0

    def _require(self) -> None:
        if not self.check_installed():
            raise ValidationError(
                f"{self.executable} is not installed. Please install it first"
            )

    def install_package(self, package_id: str) -> None:
        self._require()
        log_info(f"Installing {package_id} using {self.name}...")
        safe_run([self.executable, "install", package_id])
        log_success(f"Installed {package_id}")

    def uninstall_package(self, package_id: str) -> None:
        self._require()
        log_info(f"Uninstalling {package_id} using {self.name}...")
        safe_run([self.executable, "uninstall", package_id])
        log_success(f"Uninstalled {package_id}")


class BrewProvider(_CommandProvider):
    name = "brew"
    executable = "brew"
    version_args = ["--version"]


class MasProvider(_CommandProvider):
    name = "mas"
    executable = "mas"
    version_args = ["version"]


class ManualProvider(Provider):
    """Packages the user installs by hand; al only keeps their links and snippets."""
    name = "manual"

    def check_installed(self) -> bool:
        return True

    def install_package(self, package_id: str) -> None:
        log_info(f"{package_id} is managed manually, nothing to install")

    def uninstall_package(self, package_id: str) -> None:
        log_info(f"{package_id} is managed manually, nothing to uninstall")


# -----------------------
# Registry
# -----------------------
_REGISTRY: Dict[str, Callable[[], Provider]] = {}


def register_provider(name: str, factory: Callable[[], Provider]) -> None:
    _REGISTRY[name] = factory


def available_providers() -> List[str]:
    return sorted(_REGISTRY)


def get_provider(name: str) -> Provider:
    try:
        factory = _REGISTRY[name]
    except KeyError:
        raise ValidationError(
            f"unknown provider: {name} (available: {', '.join(available_providers())})"
        )
    return factory()


def validate_provider_name(name: str) -> str:
    get_provider(name)
    return name


register_provider(BrewProvider.name, BrewProvider)
register_provider(MasProvider.name, MasProvider)
register_provider(ManualProvider.name, ManualProvider)
