"""
Categorization Configuration
Centralized environment configuration for the AI provider, batching and storage.
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


class Config:
    """
    Configuration class for the keyword categorization module.
    All sensitive values should be set via environment variables.
    """

    # Google Gemini (REST)
    GEMINI_API_KEY = os.getenv('GEMINI_API_KEY', '')
    GEMINI_MODEL = os.getenv('GEMINI_MODEL', 'gemini-2.0-flash')
    GEMINI_API_URL = 'https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent'
    GEMINI_TIMEOUT = float(os.getenv('GEMINI_TIMEOUT', '30'))  # seconds
    GEMINI_TEMPERATURE = float(os.getenv('GEMINI_TEMPERATURE', '0.3'))
    GEMINI_MAX_OUTPUT_TOKENS = int(os.getenv('GEMINI_MAX_OUTPUT_TOKENS', '4096'))

    # Circuit breaker on repeated 429s
    CIRCUIT_BREAKER_THRESHOLD = 3
    CIRCUIT_BREAKER_COOLDOWN = 60  # seconds

    # Categorization
    SAMPLE_LIMIT = int(os.getenv('CATEGORIZE_SAMPLE_LIMIT', '500'))  # keywords sent to the model
    UPDATE_BATCH_SIZE = int(os.getenv('CATEGORIZE_BATCH_SIZE', '50'))  # assignments per write batch

    # When true, saved_to_db reflects the actual persistence outcome.
    # Default keeps the legacy behaviour of always reporting true.
    STRICT_SAVE_STATUS = _env_bool('CATEGORIZE_STRICT_SAVE_STATUS')

    # Database
    DATABASE_FILE = os.getenv('CATEGORIZE_DATABASE_FILE', 'keywords.db')

    # Logging: 'debug', 'info' or 'production'
    LOG_MODE = os.getenv('LOG_MODE', 'info').lower()

    # Server
    FLASK_HOST = os.getenv('FLASK_HOST', '127.0.0.1')
    FLASK_PORT = int(os.getenv('FLASK_PORT', '5000'))

    @classmethod
    def is_ai_configured(cls) -> bool:
        """Check if the Gemini API key is configured."""
        return bool(cls.GEMINI_API_KEY)

    @classmethod
    def get_generation_config(cls) -> dict:
        """Return Gemini generation parameters as dictionary."""
        return {
            'temperature': cls.GEMINI_TEMPERATURE,
            'maxOutputTokens': cls.GEMINI_MAX_OUTPUT_TOKENS
        }


# Create singleton instance
config = Config()
