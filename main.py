"""驾驶员状态监测系统命令行入口"""

import argparse
import json
import logging
import mimetypes
import os
import sys

import cv2
import numpy as np

from config.settings import load_config
from controllers.event_loop import EventLoopThread
from controllers.monitoring_system import MonitoringSystem
from models.data_models import MediaUpload
from models.errors import ValidationError

WINDOW_NAME = "DriveSafe Monitor"


def _read_upload(path):
    """读取本地文件作为上传媒体。"""
    content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    with open(path, "rb") as f:
        data = f.read()
    return MediaUpload(filename=os.path.basename(path), content_type=content_type, data=data)


def analyze_file(system, runner, path):
    """分析单个图片/视频文件并打印结果，返回进程退出码。"""
    try:
        upload = _read_upload(path)
    except FileNotFoundError:
        print(f"文件不存在: {path}")
        return 1

    try:
        runner.call(system.load_upload, upload)
    except ValidationError as e:
        print(f"文件不可用: {e}")
        return 1

    result = runner.run(system.analyze_upload())
    if result is None:
        print("分析失败，请查看日志")
        return 1

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0


def run_live(system, runner):
    """实时监测：打开摄像头窗口，按 q 退出。"""
    try:
        runner.run(system.start_monitoring())
    except PermissionError as e:
        print(f"无法打开摄像头: {e}")
        return 1

    try:
        while True:
            jpeg = system.render_preview()
            if jpeg is not None:
                frame = cv2.imdecode(np.frombuffer(jpeg, dtype=np.uint8), cv2.IMREAD_COLOR)
                cv2.imshow(WINDOW_NAME, frame)

            # 按 q 退出
            if cv2.waitKey(30) & 0xFF == ord("q"):
                break
    finally:
        runner.call(system.stop_monitoring)
        cv2.destroyAllWindows()
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description="驾驶员状态监测系统")
    parser.add_argument("--config", type=str, default=None, help="JSON 配置文件路径")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--image", type=str, default=None, help="分析单张图片")
    source.add_argument("--video", type=str, default=None, help="分析视频（取第 2 秒的画面）")
    parser.add_argument("--interval", type=float, default=None, help="实时分析间隔（秒）")
    parser.add_argument("--camera", type=int, default=None, help="摄像头编号")
    parser.add_argument("--verbose", action="store_true", help="输出调试日志")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)
    if args.interval is not None:
        config["analysis_interval_s"] = args.interval
    if args.camera is not None:
        config["camera_index"] = args.camera

    runner = EventLoopThread().start()
    system = runner.call(MonitoringSystem, config)
    try:
        path = args.image or args.video
        if path:
            return analyze_file(system, runner, path)
        return run_live(system, runner)
    finally:
        runner.call(system.shutdown)
        runner.stop()


if __name__ == "__main__":
    sys.exit(main())
