"""
Carrier Registry and Factory

- CarrierFactory creates carrier instances based on CarrierCode
- Implementations register themselves with @register_carrier
"""
from typing import Any, Dict, List, Type
import logging

from atelier.models.carrier import CarrierCode
from atelier.modules.shipping.carriers.base import BaseCarrier

logger = logging.getLogger(__name__)

# Registry of carrier implementations
_CARRIER_REGISTRY: Dict[CarrierCode, Type[BaseCarrier]] = {}


def register_carrier(carrier_code: CarrierCode):
    """
    Decorator to register a carrier implementation.

    Usage:
        @register_carrier(CarrierCode.MELHOR_ENVIO)
        class MelhorEnvioCarrier(BaseCarrier):
            ...
    """
    def decorator(cls: Type[BaseCarrier]):
        _CARRIER_REGISTRY[carrier_code] = cls
        logger.info(f"Registered carrier: {carrier_code.value} -> {cls.__name__}")
        return cls
    return decorator


class CarrierFactory:
    """Factory for creating carrier instances."""

    @classmethod
    def get_carrier(cls, carrier_code: CarrierCode, *args: Any, **kwargs: Any) -> BaseCarrier:
        """
        Instantiate the registered implementation for carrier_code.

        Extra arguments are passed to the carrier constructor (credentials,
        transport, ...).

        Raises:
            KeyError: no implementation registered for the code
        """
        carrier_cls = _CARRIER_REGISTRY.get(carrier_code)
        if not carrier_cls:
            logger.warning(f"No implementation registered for carrier: {carrier_code.value}")
            raise KeyError(carrier_code.value)

        return carrier_cls(*args, **kwargs)

    @classmethod
    def get_registered_carriers(cls) -> List[CarrierCode]:
        """Get list of all registered carrier codes."""
        return list(_CARRIER_REGISTRY.keys())


def get_carrier(carrier_code: CarrierCode, *args: Any, **kwargs: Any) -> BaseCarrier:
    """
    Convenience function to get a carrier.

    Equivalent to CarrierFactory.get_carrier().
    """
    return CarrierFactory.get_carrier(carrier_code, *args, **kwargs)


# Import carriers to trigger registration
# These imports must be at the bottom to avoid circular imports
from atelier.modules.shipping.carriers.melhor_envio import MelhorEnvioCarrier  # noqa: E402, F401
