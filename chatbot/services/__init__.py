"""
Services Module

Domain services behind the chat routes:
    - catalog: read-only menu lookups
    - sessions: per-device conversation state
    - cart: per-device cart lines
    - ledger: placed orders and payment settlement
    - conversation: the turn state machine and reply texts
    - payment: gateway strategy (mock / Stripe)
    - checkout: ties gateway confirmations to the ledger and sessions
"""
