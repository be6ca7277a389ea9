from __future__ import annotations

import logging
import re
from typing import Any, ClassVar

from core.errors import ActionFailedError, AmbiguousTargetError, MissingParamsError
from infra.system import SystemCapabilities
from schemas.outcomes import ReversalResult, UndoEffect
from schemas.state import StepRecord, StepSubtype

logger = logging.getLogger(__name__)

GLOBAL_DOMAINS = frozenset({"NSGlobalDomain", "-g", "-globalDomain"})

_INT_RE = re.compile(r"^-?[0-9]+$")
_FLOAT_RE = re.compile(r"^-?[0-9]+\.[0-9]+$")
_TRUTHY = {"1", "true", "yes"}
_FALSY = {"0", "false", "no"}


def strip_id_prefix(step_id: str, prefixes: tuple[str, ...]) -> str | None:
    """Legacy fallback: derive a package name from a step id such as ``brew-install-git``."""
    for prefix in prefixes:
        if step_id.startswith(prefix) and len(step_id) > len(prefix):
            return step_id[len(prefix):]
    return None


def infer_defaults_type(value: Any) -> str:
    """Pick a ``defaults write`` type flag from a value's literal form."""
    if isinstance(value, bool):
        return "-bool"
    if isinstance(value, int):
        return "-int"
    if isinstance(value, float):
        return "-float"
    text = str(value)
    if text in ("true", "false"):
        return "-bool"
    if _INT_RE.match(text):
        return "-int"
    if _FLOAT_RE.match(text):
        return "-float"
    return "-string"


def normalize_type_flag(type_name: str) -> str:
    type_name = type_name.strip()
    return type_name if type_name.startswith("-") else f"-{type_name}"


def defaults_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def defaults_value_matches(current: str, expected: str, type_flag: str) -> bool:
    current = current.strip()
    if type_flag == "-bool":
        lowered = current.lower(), expected.lower()
        if lowered[0] in _TRUTHY and lowered[1] in _TRUTHY:
            return True
        return lowered[0] in _FALSY and lowered[1] in _FALSY
    if type_flag in ("-int", "-integer", "-float"):
        try:
            return float(current) == float(expected)
        except ValueError:
            return False
    return current == expected


def services_for_domain(domain: str) -> list[str]:
    """OS services whose running state caches ``domain`` and must be restarted."""
    services: list[str] = []
    is_global = domain in GLOBAL_DOMAINS
    lowered = domain.lower()
    if "dock" in lowered:
        services.append("Dock")
    if is_global or "finder" in lowered:
        services.append("Finder")
    if is_global or "screencapture" in lowered:
        services.append("SystemUIServer")
    return services


class UndoHandler:
    subtype: ClassVar[StepSubtype]

    def reverse(self, record: StepRecord, system: SystemCapabilities) -> ReversalResult:
        raise NotImplementedError


class BrewUndoHandler(UndoHandler):
    subtype = StepSubtype.BREW
    cask = False
    param_keys: ClassVar[tuple[str, ...]] = ("package",)
    id_prefixes: ClassVar[tuple[str, ...]] = ("brew-install-", "brew-")
    noun = "package"

    def resolve_target(self, record: StepRecord) -> str:
        for key in self.param_keys:
            value = record.params.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        name = strip_id_prefix(record.id, self.id_prefixes)
        if not name:
            raise AmbiguousTargetError(
                f"Could not determine {self.noun} name from step: {record.id}",
                step_id=record.id,
            )
        logger.debug("Resolved %s %r from step id %s", self.noun, name, record.id)
        return name

    def reverse(self, record: StepRecord, system: SystemCapabilities) -> ReversalResult:
        name = self.resolve_target(record)
        warnings: list[str] = []

        if not system.is_package_installed(name, cask=self.cask):
            message = f"{self.noun.capitalize()} '{name}' is not installed (already removed?)"
            logger.warning(message)
            warnings.append(message)
            return ReversalResult(target=name, effect=UndoEffect.ALREADY_ABSENT, warnings=warnings)

        logger.info("Uninstalling brew %s: %s", self.noun, name)
        result = system.uninstall_package(name, cask=self.cask)
        if not result.ok:
            self._on_failure(name)
            raise ActionFailedError(
                f"Failed to uninstall {self.noun}: {name}",
                step_id=record.id,
                exit_code=result.returncode,
            )
        warnings.extend(self._after_removal(name))
        return ReversalResult(target=name, effect=UndoEffect.REMOVED, warnings=warnings)

    def _on_failure(self, name: str) -> None:
        logger.error("Failed to uninstall %s: %s", self.noun, name)

    def _after_removal(self, name: str) -> list[str]:
        return []


class BrewCaskUndoHandler(BrewUndoHandler):
    subtype = StepSubtype.BREW_CASK
    cask = True
    param_keys = ("cask", "package")
    id_prefixes = ("brew-cask-",)
    noun = "cask"

    def _on_failure(self, name: str) -> None:
        super()._on_failure(name)
        logger.warning("Some casks may leave files that require manual cleanup")

    def _after_removal(self, name: str) -> list[str]:
        message = f"Note: some files from cask '{name}' may remain in ~/Applications or ~/Library"
        logger.warning(message)
        return [message]


class MacDefaultsUndoHandler(UndoHandler):
    subtype = StepSubtype.MAC_DEFAULTS

    def reverse(self, record: StepRecord, system: SystemCapabilities) -> ReversalResult:
        params = record.params
        domain = params.get("domain")
        key = params.get("key")
        if not domain or not key:
            raise MissingParamsError(f"Missing domain or key in step params: {record.id}", step_id=record.id)
        domain, key = str(domain), str(key)
        target = f"{domain} {key}"

        original = params.get("originalValue", params.get("original_value"))
        logger.info("Undoing macOS defaults: %s", target)

        if original is not None and original != "":
            effect, warnings = self._restore(record, system, domain, key, original)
        else:
            effect, warnings = self._delete(record, system, domain, key)

        result = ReversalResult(target=target, effect=effect, warnings=warnings)
        if effect in (UndoEffect.RESTORED, UndoEffect.DELETED):
            self._restart_services(domain, system, result)
        return result

    def _restore(
        self,
        record: StepRecord,
        system: SystemCapabilities,
        domain: str,
        key: str,
        original: Any,
    ) -> tuple[UndoEffect, list[str]]:
        type_name = record.params.get("type")
        type_flag = normalize_type_flag(str(type_name)) if type_name else infer_defaults_type(original)
        value = defaults_literal(original)

        current = system.read_default(domain, key)
        if current is not None and defaults_value_matches(current, value, type_flag):
            message = f"'{domain} {key}' is already set to its original value (already reverted?)"
            logger.warning(message)
            return UndoEffect.ALREADY_REVERTED, [message]

        logger.info("Restoring original value: %s %s", type_flag, value)
        result = system.write_default(domain, key, type_flag, value)
        if not result.ok:
            logger.error("Failed to restore defaults: %s %s", domain, key)
            raise ActionFailedError(
                f"Failed to restore defaults: {domain} {key}",
                step_id=record.id,
                exit_code=result.returncode,
            )
        return UndoEffect.RESTORED, []

    def _delete(
        self,
        record: StepRecord,
        system: SystemCapabilities,
        domain: str,
        key: str,
    ) -> tuple[UndoEffect, list[str]]:
        if system.read_default(domain, key) is None:
            message = f"Key '{key}' not found in domain '{domain}' (already removed?)"
            logger.warning(message)
            return UndoEffect.ALREADY_REVERTED, [message]

        logger.info("Deleting defaults key %s %s (no original value stored)", domain, key)
        result = system.delete_default(domain, key)
        if not result.ok:
            logger.error("Failed to delete defaults: %s %s", domain, key)
            raise ActionFailedError(
                f"Failed to delete defaults: {domain} {key}",
                step_id=record.id,
                exit_code=result.returncode,
            )
        return UndoEffect.DELETED, []

    def _restart_services(self, domain: str, system: SystemCapabilities, result: ReversalResult) -> None:
        services = services_for_domain(domain)
        if services:
            logger.info("Restarting affected services: %s", ", ".join(services))
        for service in services:
            if system.restart_service(service):
                result.restarted_services.append(service)
                continue
            message = f"Failed to restart {service} (may not be running)"
            logger.warning(message)
            result.failed_services.append(service)
            result.warnings.append(message)


DEFAULT_HANDLERS: dict[StepSubtype, UndoHandler] = {
    StepSubtype.BREW: BrewUndoHandler(),
    StepSubtype.BREW_CASK: BrewCaskUndoHandler(),
    StepSubtype.MAC_DEFAULTS: MacDefaultsUndoHandler(),
}


__all__ = [
    "UndoHandler",
    "BrewUndoHandler",
    "BrewCaskUndoHandler",
    "MacDefaultsUndoHandler",
    "DEFAULT_HANDLERS",
    "GLOBAL_DOMAINS",
    "strip_id_prefix",
    "infer_defaults_type",
    "normalize_type_flag",
    "defaults_literal",
    "defaults_value_matches",
    "services_for_domain",
]
