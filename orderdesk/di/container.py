"""
Dependency Injection Container.

Builds the service graph once, in dependency order, and hands out the
shared instances. There are no module-level singletons: the HTTP app and
tests each get the components of the container they were given.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from orderdesk.auth import IdentityResolver, StaticTokenResolver
from orderdesk.config.loader import ConfigLoader
from orderdesk.config.schema import ConfigSchema
from orderdesk.events.bus import EventBus
from orderdesk.state.lifecycle import OrderLifecycleEngine
from orderdesk.state.merchants import InMemoryMerchantDirectory, Merchant
from orderdesk.state.store import InMemoryOrderStore, OrderStore
from orderdesk.streaming.heartbeat import AsyncioHeartbeatScheduler, HeartbeatScheduler
from orderdesk.streaming.manager import StreamManager
from orderdesk.time import Clock, RealTimeClock

logger = logging.getLogger(__name__)


class Container:
    """
    Dependency Injection Container.

    USAGE:
        container = Container()
        container.initialize(config_path="config/config.yaml")
        engine = container.get_engine()
        ...
        container.stop()
    """

    def __init__(self):
        # Config
        self._config: Optional[ConfigSchema] = None

        # Infrastructure
        self._clock: Optional[Clock] = None
        self._event_bus: Optional[EventBus] = None

        # Collaborators
        self._order_store: Optional[OrderStore] = None
        self._merchants: Optional[InMemoryMerchantDirectory] = None
        self._identity_resolver: Optional[IdentityResolver] = None

        # Core
        self._engine: Optional[OrderLifecycleEngine] = None
        self._stream_manager: Optional[StreamManager] = None

    def initialize(
        self,
        config_path: Union[str, Path, None] = None,
        *,
        config: Optional[ConfigSchema] = None,
        clock: Optional[Clock] = None,
        scheduler: Optional[HeartbeatScheduler] = None,
        order_store: Optional[OrderStore] = None,
    ) -> None:
        """
        Initialize all components in dependency order.

        ORDER:
        1. Config (explicit object, or loaded from config_path)
        2. Clock
        3. Event bus
        4. Collaborators (order store, merchant directory, identity resolver)
        5. Lifecycle engine
        6. Stream manager
        """
        if self._config is not None:
            raise RuntimeError("Container already initialized")

        # 1. Config
        if config is None:
            if config_path is None:
                config = ConfigSchema()
            else:
                loader = ConfigLoader(Path(config_path))
                config = loader.load_and_validate()
        self._config = config
        logger.info("Config loaded")

        # 2. Clock
        self._clock = clock or RealTimeClock()

        # 3. Event bus
        self._event_bus = EventBus()

        # 4. Collaborators
        self._order_store = order_store or InMemoryOrderStore()
        self._merchants = InMemoryMerchantDirectory(
            Merchant.from_dict(m.model_dump()) for m in config.merchants
        )
        self._identity_resolver = StaticTokenResolver(config.auth.tokens)
        logger.info(f"Seeded {len(self._merchants)} merchants, {len(config.auth.tokens)} tokens")

        # 5. Engine
        self._engine = OrderLifecycleEngine(
            store=self._order_store,
            merchants=self._merchants,
            bus=self._event_bus,
            clock=self._clock,
            config=config.orders,
        )

        # 6. Streams
        self._stream_manager = StreamManager(
            bus=self._event_bus,
            store=self._order_store,
            scheduler=scheduler or AsyncioHeartbeatScheduler(),
            config=config.streaming,
            clock=self._clock,
        )

        logger.info("Container initialized")

    def stop(self) -> None:
        """Close every open stream."""
        if self._stream_manager is not None:
            self._stream_manager.close_all()
        logger.info("Container stopped")

    @property
    def initialized(self) -> bool:
        return self._config is not None

    def get_config(self) -> ConfigSchema:
        if self._config is None:
            raise RuntimeError("Container not initialized")
        return self._config

    def get_clock(self) -> Clock:
        if self._clock is None:
            raise RuntimeError("Container not initialized")
        return self._clock

    def get_event_bus(self) -> EventBus:
        if self._event_bus is None:
            raise RuntimeError("Container not initialized")
        return self._event_bus

    def get_order_store(self) -> OrderStore:
        if self._order_store is None:
            raise RuntimeError("Container not initialized")
        return self._order_store

    def get_merchant_directory(self) -> InMemoryMerchantDirectory:
        if self._merchants is None:
            raise RuntimeError("Container not initialized")
        return self._merchants

    def get_identity_resolver(self) -> IdentityResolver:
        if self._identity_resolver is None:
            raise RuntimeError("Container not initialized")
        return self._identity_resolver

    def get_engine(self) -> OrderLifecycleEngine:
        if self._engine is None:
            raise RuntimeError("Container not initialized")
        return self._engine

    def get_stream_manager(self) -> StreamManager:
        if self._stream_manager is None:
            raise RuntimeError("Container not initialized")
        return self._stream_manager
