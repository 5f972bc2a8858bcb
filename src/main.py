"""
Transfer Cam: train a live camera classifier on the device.

Loads a frozen feature extractor, then lets the user collect labelled
samples from the camera, train a small classifier head, and watch live
predictions.

Usage:
    python src/main.py --config config/config.yaml --display

Arguments:
    --config: Path to configuration file
    --display: Open a preview window with keyboard triggers
    --no-web: Do not start the web control API

Preview window keys:
    1..N   start capturing class N-1 (pressing another digit switches class)
    space  stop capturing
    t      train and start predicting
    q      quit
"""

import argparse
import logging
import os
import sys
import threading
import time
from typing import Any, Dict, Optional, Tuple

import cv2
import uvicorn
import yaml

from models.config import Config
from ops.logging import setup_logging
from pipeline.errors import CameraError, LoadError, PipelineError
from runtime.context import RuntimeContext, build_context
from web.app import create_app


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)
    """
    try:
        base_path = os.path.join(os.path.dirname(config_path), "default.yaml")
        base_cfg: Dict[str, Any] = {}
        if os.path.exists(base_path):
            with open(base_path, "r") as f:
                base_cfg = yaml.safe_load(f) or {}

        local_overrides_path = os.path.join(os.path.dirname(config_path), "config.yaml")
        local_cfg: Dict[str, Any] = {}
        if os.path.exists(local_overrides_path):
            with open(local_overrides_path, "r") as f:
                local_cfg = yaml.safe_load(f) or {}

        merged = _deep_merge(base_cfg, local_cfg)

        if os.path.exists(config_path) and os.path.abspath(config_path) != os.path.abspath(local_overrides_path):
            with open(config_path, "r") as f:
                explicit_cfg = yaml.safe_load(f) or {}
            merged = _deep_merge(merged, explicit_cfg)

        return merged
    except Exception as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def _positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Returns:
        Tuple of (is_valid, error_message)
    """
    required_sections = ['categories', 'camera', 'extractor', 'training', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    categories = config['categories']
    if not isinstance(categories, list) or len(categories) < 2:
        return False, "categories must be a list of at least 2 names"
    if not all(isinstance(c, str) and c for c in categories):
        return False, "categories must be non-empty strings"
    if len(set(categories)) != len(categories):
        return False, "categories must be unique"

    camera = config.get('camera', {})
    if camera.get('backend', 'opencv') != 'opencv':
        return False, "camera.backend must be: opencv"
    device_id = camera.get('device_id', 0)
    if not isinstance(device_id, (int, str)):
        return False, "camera.device_id must be an integer (index) or string (file path)"
    if isinstance(device_id, int) and device_id < 0:
        return False, "camera.device_id integer must be non-negative"
    if 'resolution' in camera:
        resolution = camera['resolution']
        if not isinstance(resolution, list) or len(resolution) != 2:
            return False, "camera.resolution must be a list of [width, height]"
        if not all(_positive_int(x) for x in resolution):
            return False, "camera.resolution values must be positive integers"
    if 'fps' in camera and not _positive_int(camera['fps']):
        return False, "camera.fps must be a positive integer"

    extractor = config.get('extractor', {})
    input_size = extractor.get('input_size', [224, 224])
    if not isinstance(input_size, list) or len(input_size) != 2 or not all(_positive_int(x) for x in input_size):
        return False, "extractor.input_size must be a list of two positive integers"
    for key in ('url', 'cache_key', 'cache_path'):
        if key in extractor and (not isinstance(extractor[key], str) or not extractor[key]):
            return False, f"extractor.{key} must be a non-empty string"

    for section in ('capture', 'inference'):
        interval = (config.get(section, {}) or {}).get('interval_ms', 20)
        if not _positive_int(interval):
            return False, f"{section}.interval_ms must be a positive integer"

    training = config.get('training', {})
    for key in ('epochs', 'batch_size', 'hidden_units'):
        if key in training and not _positive_int(training[key]):
            return False, f"training.{key} must be a positive integer"
    if 'learning_rate' in training:
        lr = training['learning_rate']
        if not isinstance(lr, (int, float)) or lr <= 0:
            return False, "training.learning_rate must be a positive number"

    valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    if config['log_level'] not in valid_log_levels:
        return False, f"log_level must be one of: {', '.join(valid_log_levels)}"

    return True, None


def _draw_status(frame, ctx: RuntimeContext):
    """Overlay the status line and key hints on a preview frame."""
    status = ctx.controller.status
    cv2.putText(frame, status.message, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 255, 0), 2)
    hints = "  ".join(f"[{i + 1}] {name}" for i, name in enumerate(ctx.controller.categories))
    cv2.putText(frame, f"{hints}  [space] stop  [t] train  [q] quit",
                (10, frame.shape[0] - 15), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (255, 255, 255), 1)
    return frame


def _handle_key(key: int, ctx: RuntimeContext) -> bool:
    """Map a preview-window key to a trigger. Returns False to quit."""
    controller = ctx.controller
    if key == ord('q'):
        return False
    try:
        if ord('1') <= key <= ord('9'):
            controller.start_capture(key - ord('1'))
        elif key == ord(' '):
            controller.stop_capture()
        elif key == ord('t'):
            controller.stop_capture()
            controller.train_and_predict()
    except PipelineError as e:
        logging.warning(f"Key '{chr(key)}' ignored: {e}")
    return True


def run_preview(ctx: RuntimeContext) -> None:
    """Show the shared camera frames until the user presses 'q'."""
    while True:
        frame_data = ctx.source.read()
        if frame_data is not None:
            cv2.imshow("Transfer Cam", _draw_status(frame_data.frame.copy(), ctx))
        key = cv2.waitKey(20) & 0xFF
        if key != 0xFF and not _handle_key(key, ctx):
            break


def main():
    """Main application function."""
    parser = argparse.ArgumentParser(description='Transfer Cam - on-device transfer learning')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--display', action='store_true',
                        help='Open a preview window with keyboard triggers')
    parser.add_argument('--no-web', action='store_true',
                        help='Do not start the web control API')
    args = parser.parse_args()

    raw_config = load_config(args.config)

    is_valid, error_msg = validate_config(raw_config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    config = Config.from_dict(raw_config)
    setup_logging(config.log_path, config.log_level)
    logging.info(f"Starting Transfer Cam with categories {config.categories}")

    ctx = build_context(config)
    ctx.system_stats["start_time"] = time.time()

    try:
        if config.web.enabled and not args.no_web:
            def run_web_app():
                uvicorn.run(
                    create_app(ctx),
                    host=config.web.host,
                    port=config.web.port,
                    log_level="info",
                )

            web_thread = threading.Thread(target=run_web_app, name="web", daemon=True)
            web_thread.start()
            logging.info(f"Web API started on port {config.web.port}")

        try:
            ctx.controller.load_extractor()
        except LoadError:
            # Status already carries the message; keep serving it if the web API is up.
            if not (config.web.enabled and not args.no_web):
                sys.exit(1)
            while True:
                time.sleep(1.0)

        if args.display:
            try:
                ctx.controller.enable_camera()
            except CameraError:
                if not (config.web.enabled and not args.no_web):
                    sys.exit(1)
                while True:
                    time.sleep(1.0)
            run_preview(ctx)
        else:
            while True:
                time.sleep(1.0)

    except KeyboardInterrupt:
        logging.info("Interrupted by user")
    finally:
        ctx.close()
        if args.display:
            cv2.destroyAllWindows()
        logging.info("Transfer Cam stopped")


if __name__ == "__main__":
    main()
