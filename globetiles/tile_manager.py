import logging

from PySide6.QtCore import QObject, QTimer, Signal, Slot

from globetiles.camera import Camera
from globetiles.config import GlobeConfig
from globetiles.frame import FrameOrchestrator, FrameResult

logger = logging.getLogger(__name__)


class TileManager(QObject):
    """
    Drives a FrameOrchestrator from a Qt event loop. This is the class the
    main thread should interact with.

    Remarks
    -------
    - A QTimer runs one frame every `frame_interval_ms`
    - The camera is set from the GUI thread; each tick uses the latest one
    - Fetches run on the orchestrator's worker pool, so a tick never blocks

    Signals
    -------
    frameReady : FrameResult
        Sends each frame's tiles to the renderer
    """
    frameReady = Signal(object)

    def __init__(self, config: GlobeConfig | None = None,
                 orchestrator: FrameOrchestrator | None = None, parent=None):
        '''
        Parameters
        ----------
        config : GlobeConfig
            Used for the timer interval and, without an orchestrator, to build one
        orchestrator : FrameOrchestrator
            Frame pipeline; built from `config` if None
        '''
        super().__init__(parent)
        self.config = config if config is not None else GlobeConfig()
        if orchestrator is None:
            orchestrator = FrameOrchestrator.from_config(self.config)
        self.orchestrator = orchestrator
        self.camera = None
        self.last_result = None

        self.timer = QTimer(self)
        self.timer.setInterval(self.config.frame_interval_ms)
        self.timer.timeout.connect(self.tick)

    @Slot(object)
    def setCamera(self, camera: Camera) -> None:
        '''Camera used by the next tick'''
        self.camera = camera

    @Slot()
    def tick(self) -> FrameResult | None:
        '''Run one frame for the current camera and emit frameReady'''
        if self.camera is None:
            return None
        result = self.orchestrator.run_camera_frame(self.camera)
        self.last_result = result
        self.frameReady.emit(result)
        return result

    # Public API
    def start(self) -> None:
        """Start the frame timer."""
        if not self.timer.isActive():
            self.timer.start()
            logger.debug("frame timer started (%d ms)", self.timer.interval())

    def stop(self) -> None:
        """Stop the timer and shut the fetch pipeline down."""
        self.timer.stop()
        self.orchestrator.shutdown()
        logger.debug("tile manager stopped")

    def isRunning(self) -> bool:
        return self.timer.isActive()
