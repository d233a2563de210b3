import ffmpeg
import math
import logging
from viewsync.exceptions import MetadataUnavailableError

logger = logging.getLogger(__name__)

class VideoProcessor:
    """Video metadata utilities"""
    
    @staticmethod
    def probe_duration(video_path: str) -> float:
        """
        Read the playable duration of a video file in seconds.
        Raises MetadataUnavailableError when the file has no video stream
        or no usable duration.
        """
        try:
            probe = ffmpeg.probe(video_path)
        except ffmpeg.Error as e:
            error_msg = e.stderr.decode(errors="replace") if e.stderr else str(e)
            logger.error(f"Metadata extraction failed for {video_path}: {error_msg}")
            raise MetadataUnavailableError(f"Could not read video metadata: {error_msg}") from e
        except FileNotFoundError as e:
            # ffprobe binary missing
            logger.error(f"ffprobe is not available: {e}")
            raise MetadataUnavailableError("ffprobe is not available") from e
        
        # Get video stream
        video_stream = next(
            (s for s in probe.get('streams', []) if s.get('codec_type') == 'video'),
            None
        )
        if not video_stream:
            raise MetadataUnavailableError("No video stream found")
        
        # Container duration first, stream duration as fallback
        raw_duration = probe.get('format', {}).get('duration') or video_stream.get('duration')
        try:
            duration = float(raw_duration)
        except (TypeError, ValueError):
            raise MetadataUnavailableError(f"Invalid video duration: {raw_duration!r}")
        
        if not math.isfinite(duration) or duration <= 0:
            raise MetadataUnavailableError(f"Invalid video duration: {duration}")
        
        logger.info(f"Extracted duration from {video_path}: {duration:.2f}s")
        return duration
