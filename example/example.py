'''Headless orbit demo: flies a camera around the globe and logs what each frame would draw

Usage:
    python example/example.py [--local TILE_ROOT] [--frames N]
'''
import argparse
import logging
import sys

from PySide6.QtCore import QCoreApplication, QTimer

from globetiles.camera import Camera
from globetiles.config import EARTH_RADIUS, GlobeConfig
from globetiles.logging_setup import setup_logging
from globetiles.tile_manager import TileManager

logger = logging.getLogger("example")


class OrbitDemo:
    '''Moves the camera every frame and reports the frame results'''

    def __init__(self, manager: TileManager, frames: int):
        self.manager = manager
        self.frames = frames
        self.counter = 0
        self.lat = 20.0
        self.lon = -170.0
        self.altitude = 12_000_000.0

        self.manager.frameReady.connect(self.on_frame)
        self.move_timer = QTimer()
        self.move_timer.timeout.connect(self.on_timer)
        self.move_timer.start(self.manager.config.frame_interval_ms)
        self.on_timer()

    def on_timer(self):
        # drift east across the antimeridian while descending
        self.lon += 1.5
        if self.lon > 180:
            self.lon -= 360
        self.altitude = max(300_000.0, self.altitude * 0.985)
        self.manager.setCamera(Camera.orbit(self.lat, self.lon, EARTH_RADIUS + self.altitude))

    def on_frame(self, result):
        self.counter += 1
        stats = self.manager.orchestrator.cache.stats()
        logger.info("frame %d level %d lon %.1f..%.1f: %d ready, %d pending, %d unavailable, "
                    "%d resident, %d queued",
                    result.frame_number, result.level, result.bounds.min_lon, result.bounds.max_lon,
                    len(result.ready), len(result.pending), len(result.unavailable),
                    stats['resident'], stats['queued'])
        if self.counter >= self.frames:
            self.move_timer.stop()
            self.manager.stop()
            QCoreApplication.quit()


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('--local', metavar='TILE_ROOT',
                        help='read tiles from TILE_ROOT/{z}/{x}/{y}.png instead of the network')
    parser.add_argument('--frames', type=int, default=200)
    parser.add_argument('--log-level', default=None)
    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    if args.local:
        config = GlobeConfig(source='local', tile_root=args.local)
    else:
        config = GlobeConfig()

    app = QCoreApplication(sys.argv[:1])
    manager = TileManager(config)
    demo = OrbitDemo(manager, args.frames)
    manager.start()
    return app.exec()


if __name__ == '__main__':
    sys.exit(main())
