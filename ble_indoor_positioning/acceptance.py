from __future__ import annotations

from typing import Callable, Optional

from .distance import speed_filter as default_speed_filter
from .models import Location

MAXIMUM_MOVEMENT_SPEED_NOT_SET = -1.0

SpeedFilter = Callable[[Location, Location, float], Location]


def accept_location(
    candidate: Location,
    residual: float,
    previous: Optional[Location],
    root_mean_square_threshold: float,
    maximum_movement_speed: float = MAXIMUM_MOVEMENT_SPEED_NOT_SET,
    speed_filter: SpeedFilter = default_speed_filter,
) -> Optional[Location]:
    """
    判断求解结果是否可信，返回被接受的位置，None 表示拒绝：
    1. 残差 >= 阈值：拒绝
    2. 设置了最大移动速度且存在上一位置：返回经速度修正后的位置
    3. 否则原样接受
    """
    if residual >= root_mean_square_threshold:
        return None
    if maximum_movement_speed != MAXIMUM_MOVEMENT_SPEED_NOT_SET and previous is not None:
        return speed_filter(previous, candidate, maximum_movement_speed)
    return candidate
