"""
Avatar presentation: idle breathing and talking motion for a loaded 3D model.

The renderer calls ``update(elapsed)`` once per frame. The pose depends only on
elapsed time and the talking flag; animatable parts are looked up once when the
model finishes loading.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Sequence

from kids3d_teacher.speech.signals import Signal, SignalBus

logger = logging.getLogger(__name__)

MOUTH_EXPRESSIONS = ("aa", "a", "oh")


@dataclass
class Vector3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass
class Node:
    """Transform of one animatable part."""
    rotation: Vector3 = field(default_factory=Vector3)
    scale: Vector3 = field(default_factory=lambda: Vector3(1.0, 1.0, 1.0))


class AvatarModel(ABC):
    """A loaded model as seen by the presenter."""

    @property
    @abstractmethod
    def root(self) -> Node:
        pass

    @abstractmethod
    def bone(self, name: str) -> Optional[Node]:
        """Humanoid bone by name ("chest", "spine", "head"), or None."""
        pass

    def expression_names(self) -> Sequence[str]:
        return ()

    def set_expression(self, name: str, value: float) -> None:
        pass

    def dispose(self) -> None:
        pass


class ModelLoader(ABC):
    @abstractmethod
    async def load(self, path: str) -> AvatarModel:
        pass


@dataclass(frozen=True)
class AnimationConfig:
    breathing_speed: float = 0.8
    breathing_amount: float = 0.003
    sway_speed: float = 0.3
    sway_amount: float = 0.01
    blink_interval: float = 3.0
    blink_duration: float = 0.15
    # Fallback when the model has no usable bones
    pulse_amount: float = 0.02
    idle_pulse_speed: float = 1.0
    talk_pulse_speed: float = 6.0


@dataclass(frozen=True)
class Pose:
    chest_x: float = 0.0
    spine_x: float = 0.0
    head_x: float = 0.0
    head_y: float = 0.0
    root_z: float = 0.0
    mouth: float = 0.0
    blink: float = 0.0
    scale: float = 1.0


@dataclass
class _Parts:
    chest: Optional[Node] = None
    spine: Optional[Node] = None
    head: Optional[Node] = None
    mouth: Optional[str] = None
    blink: bool = False

    @property
    def has_bones(self) -> bool:
        return any(node is not None for node in (self.chest, self.spine, self.head))


def compute_pose(elapsed: float, talking: bool, bones: bool = True,
                 config: AnimationConfig = AnimationConfig()) -> Pose:
    """Pose for a given time; pure."""
    if not bones:
        speed = config.talk_pulse_speed if talking else config.idle_pulse_speed
        return Pose(scale=1.0 + math.sin(elapsed * speed * math.pi * 2) * config.pulse_amount)

    breath = math.sin(elapsed * config.breathing_speed * math.pi * 2) * config.breathing_amount
    sway = math.sin(elapsed * config.sway_speed) * config.sway_amount
    mouth = 0.0
    if talking:
        variation = math.sin(elapsed * 15.0) * 0.3 + math.sin(elapsed * 25.0) * 0.2
        mouth = max(0.0, min(1.0, 0.3 + variation))
    blink = 1.0 if (elapsed % config.blink_interval) < config.blink_duration else 0.0

    return Pose(
        chest_x=breath * 2,
        spine_x=breath,
        head_x=math.sin(elapsed * 0.3) * 0.01,
        head_y=math.sin(elapsed * 0.5) * 0.02,
        root_z=sway * 0.5,
        mouth=mouth,
        blink=blink,
    )


class AvatarPresenter:
    """Drives one avatar model. Everything is a no-op until a model is loaded."""

    def __init__(self, loader: ModelLoader, bus: Optional[SignalBus] = None,
                 config: AnimationConfig = AnimationConfig()):
        self._loader = loader
        self.config = config
        self._model: Optional[AvatarModel] = None
        self._parts = _Parts()
        self._ready = False
        self._talking = False
        self._unsubscribe = []
        if bus is not None:
            self._unsubscribe = [
                bus.subscribe(Signal.SPEAK_START, lambda **_: self.set_talking(True)),
                bus.subscribe(Signal.SPEAK_STOP, lambda **_: self.set_talking(False)),
            ]

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def talking(self) -> bool:
        return self._talking

    @property
    def model(self) -> Optional[AvatarModel]:
        return self._model

    @property
    def uses_fallback(self) -> bool:
        return self._ready and not self._parts.has_bones

    async def load(self, path: str, fallback_path: Optional[str] = None) -> AvatarModel:
        """Load ``path`` (or ``fallback_path`` if that fails) and cache its animatable parts.

        Raises:
            Exception: Whatever the loader raised for the last path tried
        """
        self._unload()
        try:
            model = await self._loader.load(path)
        except Exception as e:
            if not fallback_path:
                logger.error("Avatar failed to load from %s: %s", path, e)
                raise
            logger.warning("Avatar failed to load from %s (%s); trying fallback %s", path, e, fallback_path)
            try:
                model = await self._loader.load(fallback_path)
            except Exception as e2:
                logger.error("All avatars failed: %s", e2)
                raise

        self._model = model
        self._parts = self._resolve_parts(model)
        self._ready = True
        if not self._parts.has_bones:
            logger.warning("Avatar has no humanoid bones; using scale pulse animation")
        logger.info("Avatar loaded")
        return model

    def set_talking(self, talking: bool) -> None:
        self._talking = bool(talking)
        if not self._ready:
            return
        if not talking and self._parts.mouth:
            self._model.set_expression(self._parts.mouth, 0.0)

    def update(self, elapsed: float) -> Optional[Pose]:
        """Apply the pose for ``elapsed`` seconds to the model; None until ready."""
        if not self._ready or self._model is None:
            return None

        parts = self._parts
        pose = compute_pose(elapsed, self._talking, parts.has_bones, self.config)

        if not parts.has_bones:
            s = self._model.root.scale
            s.x = s.y = s.z = pose.scale
            return pose

        if parts.chest is not None:
            parts.chest.rotation.x = pose.chest_x
        elif parts.spine is not None:
            parts.spine.rotation.x = pose.spine_x
        if parts.head is not None:
            parts.head.rotation.x = pose.head_x
            parts.head.rotation.y = pose.head_y
        self._model.root.rotation.z = pose.root_z

        if parts.mouth:
            self._model.set_expression(parts.mouth, pose.mouth)
        if parts.blink:
            self._model.set_expression("blink", pose.blink)
        return pose

    def dispose(self) -> None:
        self._unload()
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    def _unload(self) -> None:
        if self._model is not None:
            try:
                self._model.dispose()
            except Exception as e:
                logger.debug("Ignoring avatar dispose failure: %s", e)
        self._model = None
        self._parts = _Parts()
        self._ready = False

    @staticmethod
    def _resolve_parts(model: AvatarModel) -> _Parts:
        def bone(name: str) -> Optional[Node]:
            try:
                return model.bone(name)
            except Exception as e:
                logger.debug("Bone %s unavailable: %s", name, e)
                return None

        names = set(model.expression_names())
        mouth = next((name for name in MOUTH_EXPRESSIONS if name in names), None)
        return _Parts(
            chest=bone("chest"),
            spine=bone("spine"),
            head=bone("head"),
            mouth=mouth,
            blink="blink" in names,
        )
