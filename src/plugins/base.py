"""Application context and plugin registration.

A plugin is an async callable ``plugin(context, options)`` that attaches
capabilities to the shared :class:`AppContext` (a database handle, a set of
routes, ...). Plugins are queued on a :class:`ServerBuilder` and run one at a
time, in registration order, when :meth:`ServerBuilder.ready` is awaited.

Usage:
    builder = ServerBuilder(create_app())
    builder.register(db_connector).register(routes)
    context = await builder.ready()
    handle = context.require(DATABASE)
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Type, TypeVar

import structlog
from fastapi import FastAPI

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class PluginRegistrationError(RuntimeError):
    """Raised when a plugin cannot be registered or a dependency is missing"""


class Capability(Generic[T]):
    """Typed key for a value attached to the application during registration"""

    def __init__(self, name: str, kind: Type[T]):
        self.name = name
        self.kind = kind

    def __repr__(self) -> str:
        return f"Capability({self.name!r}, {self.kind.__name__})"


CloseHook = Callable[[], Awaitable[None]]


class AppContext:
    """The application server instance plus the capabilities registered on it"""

    def __init__(self, app: FastAPI):
        self.app = app
        self._capabilities: Dict[str, Any] = {}
        self._close_hooks: List[CloseHook] = []
        self._closed = False

        # Request handlers reach the context through the app
        app.state.context = self

    def provide(self, capability: Capability[T], value: T) -> None:
        """Attach a capability to the application

        Args:
            capability: Capability key
            value: Value to attach, must be an instance of ``capability.kind``

        Raises:
            PluginRegistrationError: If the capability was already provided
            TypeError: If the value has the wrong type
        """
        if capability.name in self._capabilities:
            raise PluginRegistrationError(
                f"Capability '{capability.name}' has already been registered"
            )
        if not isinstance(value, capability.kind):
            raise TypeError(
                f"Capability '{capability.name}' expects {capability.kind.__name__}, "
                f"got {type(value).__name__}"
            )

        self._capabilities[capability.name] = value
        setattr(self.app.state, capability.name, value)

    def require(self, capability: Capability[T]) -> T:
        """Get a capability registered by an earlier plugin

        Raises:
            PluginRegistrationError: If no plugin provided the capability
        """
        try:
            return self._capabilities[capability.name]
        except KeyError:
            raise PluginRegistrationError(
                f"Capability '{capability.name}' is not registered; "
                "register the plugin that provides it first"
            ) from None

    def has(self, capability: Capability[Any]) -> bool:
        return capability.name in self._capabilities

    def add_close_hook(self, hook: CloseHook) -> None:
        self._close_hooks.append(hook)

    async def close(self) -> None:
        """Run close hooks once, most recently registered first"""
        if self._closed:
            return
        self._closed = True

        for hook in reversed(self._close_hooks):
            try:
                await hook()
            except Exception as e:
                logger.error(
                    "Close hook failed",
                    hook=getattr(hook, "__qualname__", repr(hook)),
                    error=str(e),
                    error_type=type(e).__name__,
                )


PluginFunc = Callable[[AppContext, Dict[str, Any]], Awaitable[None]]


@dataclass
class PluginRegistration:
    """A queued plugin"""

    name: str
    plugin: PluginFunc
    options: Dict[str, Any] = field(default_factory=dict)


class ServerBuilder:
    """Accumulates plugins and runs them against a shared AppContext"""

    def __init__(self, app: FastAPI):
        self.context = AppContext(app)
        self._registrations: List[PluginRegistration] = []
        self._ready = False

    @property
    def app(self) -> FastAPI:
        return self.context.app

    @property
    def registered(self) -> List[str]:
        """Names of the queued plugins, in registration order"""
        return [registration.name for registration in self._registrations]

    def register(
        self,
        plugin: PluginFunc,
        options: Optional[Dict[str, Any]] = None,
        name: Optional[str] = None,
    ) -> "ServerBuilder":
        """Queue a plugin

        Args:
            plugin: Async plugin callable
            options: Options handed to the plugin
            name: Registration name, defaults to the plugin's ``__name__``

        Returns:
            The builder, for chaining
        """
        if self._ready:
            raise PluginRegistrationError(
                "Plugins cannot be registered after the server is ready"
            )

        plugin_name = name or getattr(plugin, "__name__", repr(plugin))
        if plugin_name in self.registered:
            logger.warning("Plugin already registered, skipping", plugin=plugin_name)
            return self

        self._registrations.append(
            PluginRegistration(name=plugin_name, plugin=plugin, options=dict(options or {}))
        )
        return self

    async def ready(self) -> AppContext:
        """Run every queued plugin, in order, and return the context"""
        if self._ready:
            return self.context

        for registration in self._registrations:
            try:
                await registration.plugin(self.context, dict(registration.options))
            except Exception as e:
                logger.error(
                    "Plugin registration failed",
                    plugin=registration.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise
            logger.info("Plugin registered", plugin=registration.name)

        self._ready = True
        return self.context
