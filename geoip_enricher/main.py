"""
GeoIP worker. Takes events from the input binding, looks up their IP addresses
in the GeoIP databases, adds location information and publishes the updated
events on the output bindings.

A background thread periodically runs geoipupdate to refresh the databases.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from . import config
from .api.events import router as events_router
from .api.health import router as health_router
from .api.prometheus import router as prometheus_router
from .enrich.geoip import Enricher
from .enrich.providers import ProviderPair
from .enrich.refresher import ProviderRefresher, ReloadSignal
from .logging_config import setup_logging
from .queue_manager import EventBus, EventProducer, NdjsonSink

# Configure logging at import time
setup_logging()

logger = logging.getLogger("app")

@asynccontextmanager
async def lifespan(application: FastAPI):
    logger.info("GeoIP worker starting up", extra={
        "component": "api",
        "input": config.INPUT,
        "outputs": config.OUTPUTS
    })

    # Databases are opened before any event is accepted
    providers = ProviderPair(config.GEOIP_DB, config.GEOIP_ASN_DB)
    providers.reopen()

    reload_signal = ReloadSignal()
    bus = EventBus(max_depth=config.QUEUE_MAX_DEPTH)
    producer = EventProducer(bus, config.OUTPUTS)
    enricher = Enricher(providers, reload_signal, output=producer.output)
    refresher = ProviderRefresher(
        providers, reload_signal,
        update_period=config.GEOIP_UPDATE_PERIOD,
        retry_period=config.GEOIP_RETRY_PERIOD,
        config_file=config.GEOIPUPDATE_CONFIG,
        workdir=config.GEOIPUPDATE_DIR
    )

    bus.subscribe(config.INPUT, enricher.handle_event)
    if config.OUTPUT_DIR:
        for binding in config.OUTPUTS:
            bus.subscribe(binding, NdjsonSink(binding, config.OUTPUT_DIR))

    application.state.providers = providers
    application.state.refresher = refresher
    application.state.enricher = enricher
    application.state.bus = bus
    application.state.input_binding = config.INPUT

    await bus.start()
    refresher.start()

    logger.info("Initialisation complete", extra={"component": "api"})

    try:
        yield
    finally:
        refresher.stop()
        await bus.stop()
        logger.info("Shutdown.", extra={"component": "api"})

app = FastAPI(title="GeoIP enrichment worker", version=config.APP_VERSION, lifespan=lifespan)

app.include_router(events_router, prefix=config.API_PREFIX)
app.include_router(health_router, prefix=config.API_PREFIX)
app.include_router(prometheus_router, prefix=config.API_PREFIX)

def run():
    """Console entry point"""
    uvicorn.run(app, host=config.APP_HOST, port=config.APP_PORT, log_config=None)

if __name__ == "__main__":
    run()
