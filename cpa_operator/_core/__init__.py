"""
The operator's core: the reconciliation actions, the intents, the reactor.
"""
