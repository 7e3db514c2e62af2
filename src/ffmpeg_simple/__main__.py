"""
Entry point for running ffmpeg-simple as a module: python -m ffmpeg_simple

    python -m ffmpeg_simple convert clip.mov --crf 28
    python -m ffmpeg_simple --help
"""

import sys

from ffmpeg_simple.cli import main

if __name__ == "__main__":
    sys.exit(main())
