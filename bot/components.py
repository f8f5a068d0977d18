# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                      BOT COMPONENT LIFECYCLE MODULE                        ║
# ║    Brings long-lived pieces (state store, calendar, notifier, scheduler)   ║
# ║    up in order and tears them down in reverse, collecting every failure.   ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
components.py: Uniform init/shutdown for the bot's long-lived parts.
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from utils.error_handling import ComponentInitError, ComponentShutdownError
from utils.logging import logger

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ COMPONENT PROTOCOL & STATE                                                ║
# ╚════════════════════════════════════════════════════════════════════════════╝

@runtime_checkable
class Component(Protocol):
    def name(self) -> str:
        ...

    async def init(self, ctx: Any) -> None:
        ...

    async def shutdown(self) -> None:
        ...


class ComponentState(str, Enum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    INITIALIZED = "initialized"
    SHUTTING_DOWN = "shutting_down"
    SHUT_DOWN = "shut_down"
    FAILED = "failed"

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ COMPONENT MANAGER                                                         ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class ComponentManager:
    def __init__(self):
        self._components: List[Component] = []
        self._states: Dict[str, ComponentState] = {}
        # Components that must be offered a shutdown, in init order
        self._started: List[Component] = []

    # --- register ---
    # Raises: ValueError if a component with the same name exists.
    def register(self, component: Component) -> None:
        name = component.name()
        if name in self._states:
            raise ValueError(f"Component '{name}' is already registered")
        self._components.append(component)
        self._states[name] = ComponentState.REGISTERED
        logger.debug(f"Registered component {name}")

    def get(self, name: str) -> Optional[Component]:
        for component in self._components:
            if component.name() == name:
                return component
        return None

    def state_of(self, name: str) -> ComponentState:
        return self._states.get(name, ComponentState.UNREGISTERED)

    # --- init_all ---
    # Initializes components in registration order. On the first failure the
    # ones already up are shut down in reverse order, the failing one gets a
    # single shutdown attempt, and ComponentInitError is raised.
    async def init_all(self, ctx: Any = None) -> None:
        for component in self._components:
            name = component.name()
            if self._states[name] != ComponentState.REGISTERED:
                continue
            logger.info(f"🔧 Initializing {name}...")
            try:
                await component.init(ctx)
            except Exception as e:
                logger.error(f"❌ Failed to initialize {name}: {e}")
                self._states[name] = ComponentState.FAILED
                self._started.append(component)
                await self._rollback()
                raise ComponentInitError(name, e) from e
            self._states[name] = ComponentState.INITIALIZED
            self._started.append(component)
            logger.info(f"✅ {name} initialized")

    # --- _rollback ---
    async def _rollback(self) -> None:
        try:
            await self.shutdown_all()
        except ComponentShutdownError as e:
            logger.warning(f"Rollback after failed init was incomplete: {e}")

    # --- _shutdown_one ---
    # Returns: The exception raised by the component, or None.
    async def _shutdown_one(self, component: Component) -> Optional[BaseException]:
        name = component.name()
        was_failed = self._states[name] == ComponentState.FAILED
        self._states[name] = ComponentState.SHUTTING_DOWN
        try:
            await component.shutdown()
        except Exception as e:
            logger.error(f"Error shutting down {name}: {e}")
            self._states[name] = ComponentState.FAILED
            return e
        self._states[name] = ComponentState.FAILED if was_failed else ComponentState.SHUT_DOWN
        logger.info(f"🛑 {name} shut down")
        return None

    # --- shutdown_all ---
    # Shuts down every initialized or failed component in reverse order and
    # keeps going past failures.
    # Raises: ComponentShutdownError with every (name, exception) collected.
    async def shutdown_all(self) -> None:
        errors: List[Tuple[str, BaseException]] = []
        while self._started:
            component = self._started.pop()
            error = await self._shutdown_one(component)
            if error is not None:
                errors.append((component.name(), error))
        if errors:
            raise ComponentShutdownError(errors)
