"""Central command registry.

Stores every command under its ``namespace:name`` key with a secondary alias
index for O(1) alias resolution, and owns the lifecycle of dynamic command
sources (concurrent discovery, per-namespace refresh).

All mutation of the primary store and the alias index goes through
``register``/``unregister``/``clear``; the two maps are never updated
separately. There is no internal locking: the registry assumes one logical
flow of control (one CLI invocation or one REPL loop).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from ..errors import DynamicSourceError, UnknownNamespaceError
from ..models import DEFAULT_CATEGORY, Command, RegistryStats, command_key
from ..sources.base import DynamicCommandSource, SourceOutcome

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Process-scoped command store.

    Features:
    - Primary store keyed by ``namespace:name`` (or bare ``name``)
    - Alias index (alias -> key) kept consistent on overwrite and removal
    - Namespace listing, keyword search and category grouping
    - Dynamic sources discovered concurrently with per-source failure isolation
    """

    def __init__(self) -> None:
        self._commands: Dict[str, Command] = {}
        self._aliases: Dict[str, str] = {}  # alias -> command key
        self._dynamic_sources: Dict[str, DynamicCommandSource] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    def register(self, command: Command) -> None:
        """Store ``command``, replacing any command already at its key.

        The previous command's aliases are retracted before the new command's
        aliases are indexed.
        """
        key = command.key

        if key in self._commands:
            logger.warning(f"Command {key} is already registered, overwriting")
            self._retract_aliases(key)

        self._commands[key] = command

        for alias in command.aliases:
            owner = self._aliases.get(alias)
            if owner is not None and owner != key:
                logger.warning(f"Alias '{alias}' reassigned from {owner} to {key}")
            self._aliases[alias] = key

        logger.debug(f"Registered command '{key}'")

    def register_many(self, commands: Iterable[Command]) -> None:
        for command in commands:
            self.register(command)

    def unregister(self, name: str, namespace: Optional[str] = None) -> bool:
        """Remove a command and every alias that points at it.

        Returns:
            True if a command was removed, False if the key was unknown
        """
        key = command_key(name, namespace)
        if key not in self._commands:
            return False

        self._retract_aliases(key)
        del self._commands[key]
        logger.debug(f"Unregistered command '{key}'")
        return True

    def _retract_aliases(self, key: str) -> None:
        command = self._commands.get(key)
        if command is None:
            return

        for alias in command.aliases:
            # Only drop index entries still owned by this key
            if self._aliases.get(alias) == key:
                del self._aliases[alias]

    def clear(self) -> None:
        """Remove all commands (static and dynamic). Sources stay registered."""
        self._commands.clear()
        self._aliases.clear()

    def clear_namespace(self, namespace: str) -> int:
        """Remove every command in ``namespace``; returns how many were removed."""
        commands = self.list_commands(namespace)
        for command in commands:
            self.unregister(command.name, command.namespace)
        return len(commands)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def get(self, name: str, namespace: Optional[str] = None) -> Optional[Command]:
        return self._commands.get(command_key(name, namespace))

    def has(self, name: str, namespace: Optional[str] = None) -> bool:
        return command_key(name, namespace) in self._commands

    def list_commands(self, namespace: Optional[str] = None) -> List[Command]:
        commands = list(self._commands.values())
        if namespace:
            return [cmd for cmd in commands if cmd.namespace == namespace]
        return commands

    def list_namespaces(self) -> List[str]:
        return sorted({cmd.namespace for cmd in self._commands.values() if cmd.namespace})

    def resolve(self, full_name: str) -> Optional[Command]:
        """Resolve ``namespace:name`` or a bare global ``name``.

        Examples:
            registry.resolve("services:health")
            registry.resolve("help")
        """
        if ":" in full_name:
            namespace, _, name = full_name.partition(":")
            return self.get(name, namespace or None)
        return self.get(full_name)

    def resolve_alias(self, alias: str) -> Optional[Command]:
        """O(1) alias lookup through the alias index."""
        key = self._aliases.get(alias)
        if key is None:
            return None
        return self._commands.get(key)

    def alias_index(self) -> Dict[str, str]:
        """Snapshot of the alias index (alias -> command key)."""
        return dict(self._aliases)

    def search(self, keyword: str) -> List[Command]:
        """Case-insensitive substring match over name, description, namespace and aliases."""
        needle = keyword.lower()
        results = []
        for cmd in self._commands.values():
            if (
                needle in cmd.name.lower()
                or needle in cmd.description.lower()
                or (cmd.namespace and needle in cmd.namespace.lower())
                or any(needle in alias.lower() for alias in cmd.aliases)
            ):
                results.append(cmd)
        return results

    def get_by_category(self) -> Dict[str, List[Command]]:
        categories: Dict[str, List[Command]] = {}
        for cmd in self._commands.values():
            categories.setdefault(cmd.category or DEFAULT_CATEGORY, []).append(cmd)
        return categories

    def get_stats(self) -> RegistryStats:
        return RegistryStats(
            total_commands=len(self._commands),
            namespaces=len(self.list_namespaces()),
            dynamic_sources=len(self._dynamic_sources),
            categories=len(self.get_by_category()),
        )

    def __len__(self) -> int:
        return len(self._commands)

    # ------------------------------------------------------------------
    # Dynamic sources
    # ------------------------------------------------------------------
    def register_dynamic_source(self, source: DynamicCommandSource) -> None:
        if source.namespace in self._dynamic_sources:
            logger.warning(f"Dynamic source for namespace '{source.namespace}' replaced")
        self._dynamic_sources[source.namespace] = source

    def unregister_dynamic_source(self, namespace: str, clear_commands: bool = False) -> bool:
        source = self._dynamic_sources.pop(namespace, None)
        if source is None:
            return False
        if clear_commands:
            self.clear_namespace(namespace)
        return True

    def list_dynamic_sources(self) -> List[DynamicCommandSource]:
        return list(self._dynamic_sources.values())

    async def discover_dynamic_commands(self) -> List[SourceOutcome]:
        """Call ``discover()`` on every source concurrently and register the results.

        A failing source is logged and reported in its outcome; it never
        prevents the other sources' commands from being registered.
        """
        sources = list(self._dynamic_sources.values())
        outcomes = await asyncio.gather(*(self._discover_source(s) for s in sources))
        return list(outcomes)

    async def refresh(self, namespace: Optional[str] = None) -> List[SourceOutcome]:
        """Refresh every source (or only ``namespace``) and replace its commands.

        For each source: ``refresh()``, then ``discover()``, then clear the
        namespace and register the fresh set. Readers may observe a transient
        gap for that namespace between the clear and the fill. A source that
        fails keeps its previous commands.

        Raises:
            UnknownNamespaceError: If ``namespace`` has no registered source
        """
        if namespace is not None:
            source = self._dynamic_sources.get(namespace)
            if source is None:
                raise UnknownNamespaceError(f"No dynamic source registered for namespace '{namespace}'")
            sources = [source]
        else:
            sources = list(self._dynamic_sources.values())

        outcomes = await asyncio.gather(*(self._refresh_source(s) for s in sources))
        return list(outcomes)

    async def _discover_source(self, source: DynamicCommandSource) -> SourceOutcome:
        try:
            commands = _checked_commands(source, await source.discover())
        except Exception as exc:
            logger.error(f"Failed to discover commands from {source.namespace}: {exc}", exc_info=True)
            return SourceOutcome(namespace=source.namespace, success=False, error=str(exc))

        count = self._register_discovered(source, commands)
        logger.info(f"Discovered {count} commands from {source.namespace}")
        return SourceOutcome(namespace=source.namespace, success=True, command_count=count)

    async def _refresh_source(self, source: DynamicCommandSource) -> SourceOutcome:
        try:
            await source.refresh()
            commands = _checked_commands(source, await source.discover())
        except Exception as exc:
            logger.error(f"Failed to refresh commands from {source.namespace}: {exc}", exc_info=True)
            return SourceOutcome(namespace=source.namespace, success=False, error=str(exc))

        removed = self.clear_namespace(source.namespace)
        count = self._register_discovered(source, commands)
        logger.info(f"Refreshed {source.namespace}: removed {removed}, registered {count}")
        return SourceOutcome(namespace=source.namespace, success=True, command_count=count)

    def _register_discovered(self, source: DynamicCommandSource, commands: List[Command]) -> int:
        count = 0
        for command in commands:
            if command.namespace != source.namespace:
                logger.warning(
                    f"Skipping command '{command.key}' from source '{source.namespace}': namespace mismatch"
                )
                continue
            self.register(command)
            count += 1
        return count


def _checked_commands(source: DynamicCommandSource, result: object) -> List[Command]:
    """Materialize a ``discover()`` result, rejecting anything that is not a list of commands."""
    if result is None or isinstance(result, (str, bytes, dict)):
        raise DynamicSourceError(
            f"Source '{source.namespace}' returned {type(result).__name__} instead of a command list"
        )
    try:
        commands = list(result)  # type: ignore[call-overload]
    except TypeError as exc:
        raise DynamicSourceError(
            f"Source '{source.namespace}' returned a non-iterable {type(result).__name__}", cause=exc
        ) from exc

    for item in commands:
        if not isinstance(item, Command):
            raise DynamicSourceError(
                f"Source '{source.namespace}' returned a {type(item).__name__!r} item instead of a Command",
                payload={"namespace": source.namespace},
            )
    return commands
