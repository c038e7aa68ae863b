"""
UDP Log Collector
Receives logged QSOs from WSJT-X and N1MM+ over UDP and forwards them
to an ADIF file, an MQTT broker and Wavelog.
"""

__version__ = "1.0.0"
