# SpeechKarma: public archive of politicians' statements.
__version__ = "0.1.0"
