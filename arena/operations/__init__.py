"""
Operations Layer

Business logic that composes Database methods into multi-step workflows.
Operations modules own validation, transactions and the error-code contract;
the Discord layer only renders their results and notifications.

Each operations module focuses on a specific domain:
- PlayerOperations: player profiles, forfeit tracking and queue lockout
- EloService: rated/unrated result recording and daily streaks
- QueueOperations: matchmaking queue entries and candidate selection
- ChallengeOperations: direct challenges and their acceptance
- SessionManager: session lifecycle, moves, timeouts and forfeits
"""
