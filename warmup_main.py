import asyncio
import sys

from application.services.warmup_service import WarmupService
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import InvalidDescriptorException
from infrastructure.external.clients import GrpcClient, HttpClient


logger = get_logger(__name__)


async def main() -> int:
    http_cfg, grpc_cfg, warmup_cfg = settings.http, settings.grpc, settings.warmup
    if not (http_cfg.enabled or grpc_cfg.enabled):
        logger.warning("warmup_disabled", message="both HTTP__ENABLED and GRPC__ENABLED are false")
        return 0

    http_client = HttpClient(http_cfg.host, http_cfg.insecure, http_cfg.timeout_seconds) if http_cfg.enabled else None
    grpc_client = (
        GrpcClient(grpc_cfg.host, grpc_cfg.insecure, grpc_cfg.timeout_seconds, grpc_cfg.dial_timeout_seconds)
        if grpc_cfg.enabled
        else None
    )

    try:
        service = WarmupService(
            http_client=http_client,
            grpc_client=grpc_client,
            http_requests=http_cfg.requests if http_client else (),
            grpc_requests=grpc_cfg.requests if grpc_client else (),
            http_headers=http_cfg.headers,
            grpc_headers=grpc_cfg.headers,
            concurrency=warmup_cfg.concurrency,
            max_duration_seconds=warmup_cfg.max_duration_seconds,
            max_requests=warmup_cfg.max_requests,
            request_delay_ms=warmup_cfg.request_delay_ms,
        )
    except InvalidDescriptorException as exc:
        logger.error("warmup_invalid_descriptor", descriptor=exc.descriptor, error=exc.message)
        return 2

    try:
        summary = await service.run()
    finally:
        for client in (http_client, grpc_client):
            if client is not None:
                await client.close()

    if summary.total and not summary.succeeded:
        logger.error("warmup_failed", message="no warmup call succeeded")
        return 1
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
