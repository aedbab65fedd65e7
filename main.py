"""
入口转发

此文件仅用于兼容 `python main.py` 的运行方式，会转发到 `ble_indoor_positioning.cli:main`。
日志由 cli.main 按 --log-level 参数统一初始化，这里不再单独配置。
CLI 安装后名为 ble-indoor-positioning。
"""

import sys

from ble_indoor_positioning.cli import main as _cli_main


def main():
    sys.exit(_cli_main())


if __name__ == "__main__":  # pragma: no cover
    main()
