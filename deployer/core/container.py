# deployer/core/container.py

from typing import TypeVar, Type, Callable, Set, Dict, Any, Tuple, Optional
import inspect

from .logging import DeployerLogger, log_with_context, DEBUG, ERROR
from .settings import DeployerSettings

T = TypeVar('T')


class DeployerContainer:
    """Dependency injection container with singleton and factory registration"""

    def __init__(self, settings: DeployerSettings):
        self._settings = settings
        # service_type -> (implementation, factory)
        self._services: Dict[Type, Tuple[Optional[Type], Optional[Callable]]] = {}
        self._instances: Dict[Type, Any] = {}
        self._resolution_stack: Set[Type] = set()

        self._logger = DeployerLogger.get_logger('core.container')
        self._logger.debug("DeployerContainer initialized")

    @property
    def settings(self) -> DeployerSettings:
        return self._settings

    def register_singleton(self, interface: Type[T], implementation: Type[T]) -> 'DeployerContainer':
        """Register a class built once by constructor injection"""
        log_with_context(self._logger, DEBUG, "Registering singleton service",
                         resource=interface.__name__)
        self._services[interface] = (implementation, None)
        return self

    def register_factory(self, interface: Type[T],
                         factory_func: Callable[['DeployerContainer'], T]) -> 'DeployerContainer':
        """Register a factory function, called once"""
        log_with_context(self._logger, DEBUG, "Registering factory service",
                         resource=interface.__name__)
        self._services[interface] = (None, factory_func)
        return self

    def register_instance(self, interface: Type[T], instance: T) -> 'DeployerContainer':
        self._services[interface] = (None, None)
        self._instances[interface] = instance
        return self

    def get(self, service_type: Type[T]) -> T:
        """Get service instance, creating if necessary"""
        service_name = service_type.__name__

        if service_type in self._resolution_stack:
            circular_path = " -> ".join(t.__name__ for t in self._resolution_stack) + f" -> {service_name}"
            log_with_context(self._logger, ERROR, "Circular dependency detected",
                             resource=service_name, error=circular_path)
            raise ValueError(f"Circular dependency detected: {circular_path}")

        if service_type not in self._services:
            log_with_context(self._logger, ERROR, "Service not registered", resource=service_name)
            raise ValueError(f"Service {service_name} not registered")

        if service_type in self._instances:
            return self._instances[service_type]

        implementation, factory = self._services[service_type]
        self._resolution_stack.add(service_type)

        try:
            if factory:
                instance = factory(self)
            else:
                instance = self._create_instance(implementation)
        except Exception as e:
            log_with_context(self._logger, ERROR, "Failed to create service instance",
                             resource=service_name, error=str(e),
                             exception_type=type(e).__name__)
            raise
        finally:
            self._resolution_stack.discard(service_type)

        self._instances[service_type] = instance
        log_with_context(self._logger, DEBUG, "Service instance created",
                         resource=service_name)
        return instance

    def _create_instance(self, implementation_type: Type):
        """Create instance, injecting registered services and settings by annotation"""
        sig = inspect.signature(implementation_type.__init__)
        kwargs = {}

        for param_name, param in sig.parameters.items():
            if param_name == 'self':
                continue

            param_type = param.annotation
            if param_type is not inspect.Parameter.empty and param_type in self._services:
                kwargs[param_name] = self.get(param_type)
            elif param_type is DeployerSettings:
                kwargs[param_name] = self._settings

        return implementation_type(**kwargs)

    def has_service(self, service_type: Type) -> bool:
        return service_type in self._services
