"""Room Recorder - records live HLS room streams to MPEG-TS files."""

__version__ = "0.1.0"
