from __future__ import annotations

from typing import Callable, Iterable, List, Optional

from .models import Beacon

BeaconFilter = Callable[[Beacon], bool]
# (beacon, now, custom_filter) -> bool，可整体替换默认的可用性判定
UsableBeaconFilter = Callable[[Beacon, float, Optional[BeaconFilter]], bool]

# 三边定位至少需要3个信标
MINIMUM_BEACON_COUNT = 3
MAXIMUM_BEACON_COUNT = 10

# 超过2秒未扫描到的信标视为过期
USABLE_BEACON_MAX_AGE = 2000


def is_usable(beacon: Beacon, now: float, custom_filter: Optional[BeaconFilter] = None) -> bool:
    """信标是否可参与定位：自定义过滤通过、已分配位置、最近2秒内被扫描到"""
    if custom_filter is not None and not custom_filter(beacon):
        return False
    if not beacon.has_location:
        return False
    if not beacon.has_been_seen_in_the_past(USABLE_BEACON_MAX_AGE, now):
        return False
    return True


def get_usable_beacons(
    beacons: Iterable[Beacon],
    now: float,
    custom_filter: Optional[BeaconFilter] = None,
    usable_filter: Optional[UsableBeaconFilter] = None,
) -> List[Beacon]:
    usable_filter = usable_filter or is_usable
    usable: List[Beacon] = []
    seen: set[str] = set()
    for beacon in beacons:
        if beacon.mac in seen:
            continue
        if usable_filter(beacon, now, custom_filter):
            usable.append(beacon)
            seen.add(beacon.mac)
    return usable


def select_beacons(
    beacons: Iterable[Beacon],
    now: float,
    minimum_rssi: float,
    custom_filter: Optional[BeaconFilter] = None,
    usable_filter: Optional[UsableBeaconFilter] = None,
) -> List[Beacon]:
    """
    构造参与求解的信标工作集（不修改入参）：
    - 可用信标不足3个：返回空列表
    - 恰好3个：原样返回
    - 多于3个：按滤波RSSI从强到弱排序，最强的3个始终保留；
      之后在上限(10)以内遇到第一个低于 minimum_rssi 的信标即截断
    """
    usable = get_usable_beacons(beacons, now, custom_filter, usable_filter)
    if len(usable) < MINIMUM_BEACON_COUNT:
        return []
    if len(usable) == MINIMUM_BEACON_COUNT:
        return usable

    # sorted 为稳定排序，RSSI 相同时保持原顺序
    ranked = sorted(usable, key=lambda b: b.filtered_rssi, reverse=True)
    maximum_index = min(MAXIMUM_BEACON_COUNT, len(ranked))
    first_removable_index = maximum_index
    for index in range(MINIMUM_BEACON_COUNT, maximum_index):
        if ranked[index].filtered_rssi < minimum_rssi:
            first_removable_index = index
            break
    return ranked[:first_removable_index]


def mac_address_filter(macs: Iterable[str]) -> BeaconFilter:
    """仅允许白名单内的信标参与定位"""
    allowed = {mac.upper() for mac in macs}

    def matches(beacon: Beacon) -> bool:
        return beacon.mac.upper() in allowed

    return matches
