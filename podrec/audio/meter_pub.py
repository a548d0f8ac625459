"""Meter publisher for pub/sub delivery to rendering collaborators."""

import logging
from pubsub import pub
from ..models.audio import MeterSample
from ..models.events import WaveformFrame

logger = logging.getLogger(__name__)

LEVEL_TOPIC = "meter.level"
WAVEFORM_TOPIC = "meter.waveform"


class MeterPublisher:
    """Publishes meter samples and waveform frames using pubsub.pub."""
    
    def __init__(self, level_topic: str = LEVEL_TOPIC, waveform_topic: str = WAVEFORM_TOPIC):
        """Initialize meter publisher.
        
        Args:
            level_topic: Pub/sub topic name for MeterSample values
            waveform_topic: Pub/sub topic name for WaveformFrame values
        """
        self.level_topic = level_topic
        self.waveform_topic = waveform_topic
        logger.info(f"MeterPublisher initialized with topics: {level_topic}, {waveform_topic}")
    
    def publish_sample(self, sample: MeterSample) -> None:
        """Publish a meter sample.
        
        Args:
            sample: MeterSample to publish
        """
        pub.sendMessage(self.level_topic, sample=sample)
    
    def publish_waveform(self, frame: WaveformFrame) -> None:
        """Publish raw time-domain bytes for waveform drawing."""
        pub.sendMessage(self.waveform_topic, frame=frame)
