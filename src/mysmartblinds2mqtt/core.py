# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Jeff Culverhouse
from .mixins.helpers import HelpersMixin
from .mixins.mqtt import MqttMixin
from .mixins.publish import PublishMixin
from .mixins.blinds import BlindsMixin
from .mixins.blinds_api import BlindsAPIMixin
from .mixins.queue import QueueMixin
from .mixins.refresh import RefreshMixin
from .mixins.loops import LoopsMixin
from .base import Base


class MySmartBlinds2Mqtt(
    HelpersMixin,
    PublishMixin,
    BlindsMixin,
    BlindsAPIMixin,
    QueueMixin,
    RefreshMixin,
    LoopsMixin,
    MqttMixin,
    Base,
):
    pass
