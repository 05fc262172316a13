from uuid6 import uuid7


def new_correlation_id() -> str:
    """Time-ordered random id for rollId/requestId"""
    return str(uuid7())


def generate_dice_id() -> str:
    """Id of one die instance inside a started roll"""
    return uuid7().hex[-12:]
