"""Leitura de arquivos de audio e fatiamento em chunks de tempo real."""

from relive.audio.source import AudioFileSource, detect_audio_format

__all__ = ["AudioFileSource", "detect_audio_format"]
