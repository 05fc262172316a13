import logging
import time
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request, status

from dice_bridge.errors import RequestCancelledError, RequestTimeoutError, TransportUnavailableError
from dice_bridge.heartbeat import HEARTBEAT_KEY, is_heartbeat_fresh, read_heartbeat
from dice_bridge.integration import DiceIntegration
from dice_bridge.load_settings import namespaced
from dice_bridge.models.dc_models import AvailabilityResult, DiceRollConfig, PlayerDiceState

roll_router = APIRouter()


def get_integration(request: Request) -> DiceIntegration:
    integration: DiceIntegration = request.app.state.integration
    if not integration.started:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dice integration is not running",
        )
    return integration


class RollAPI:
    @staticmethod
    @roll_router.post("/roll")
    async def roll(config: DiceRollConfig, request: Request, wait: bool = True):
        integration = get_integration(request)
        try:
            if not wait:
                roll_id = await integration.dice_api.trigger_roll_async(config)
                return {"rollId": roll_id}
            return await integration.dice_api.trigger_roll(config)
        except RequestTimeoutError as e:
            logging.info(f"Roll timed out: {e}")
            raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(e))
        except (TransportUnavailableError, RequestCancelledError) as e:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Dice roll could not be delivered: {e}",
            )

    @staticmethod
    @roll_router.get("/dice-state", response_model=List[PlayerDiceState])
    async def dice_state(request: Request):
        integration = get_integration(request)
        return await integration.dice_api.get_current_dice_state()


class AvailabilityAPI:
    @staticmethod
    @roll_router.get("/availability", response_model=AvailabilityResult)
    async def availability(request: Request, timeout: Optional[float] = None):
        integration = get_integration(request)
        return await integration.dice_api.probe(timeout)

    @staticmethod
    @roll_router.get("/heartbeat")
    async def heartbeat(request: Request):
        integration = get_integration(request)
        heartbeat = await read_heartbeat(
            integration.redis, namespaced(HEARTBEAT_KEY, integration.namespace)
        )
        return {
            "heartbeat": heartbeat.model_dump(by_alias=True) if heartbeat else None,
            "fresh": is_heartbeat_fresh(heartbeat, time.time(), 2 * integration.heartbeat_interval),
        }
