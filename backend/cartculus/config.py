import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Challenge windows (seconds)
    NO_SOLUTION_DURATION_SEC = int(os.environ.get('NO_SOLUTION_DURATION_SEC', '30'))
    REVEAL_DURATION_SEC = int(os.environ.get('REVEAL_DURATION_SEC', '30'))
    # Delay before dealing again once every active player is waiting (seconds)
    ROUND_ADVANCE_DELAY_SEC = float(os.environ.get('ROUND_ADVANCE_DELAY_SEC', '1.5'))
    # Longest the deal loading phase may last before the round is revealed (seconds)
    DEAL_LOAD_TIMEOUT_SEC = float(os.environ.get('DEAL_LOAD_TIMEOUT_SEC', '8'))
    ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            'ALLOWED_ORIGINS',
            'http://localhost:3000,http://127.0.0.1:3000',
        ).split(',')
        if origin.strip()
    ]
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    PORT = int(os.environ.get('PORT', '4000'))
