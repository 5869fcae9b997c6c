from spark_voice.telephony.app import create_app

__all__ = ["create_app"]
