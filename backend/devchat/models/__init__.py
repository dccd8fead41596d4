from devchat.models.store import CounterRecord, KeyValueRecord  # noqa: F401
