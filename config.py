import logging
import os
from dotenv import load_dotenv

load_dotenv()

TG_BOT_TOKEN = os.getenv('TELEGRAM_BOT_TOKEN')
PROXY_URL = os.getenv('PROXY_URL')

DB_PATH = os.getenv(
    'DB_PATH',
    os.path.join(os.path.dirname(os.path.abspath(__file__)), 'flashcards.db'),
)

# Key the serialized app state is stored under
STORAGE_KEY = 'flashcard-engine-data'

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL, logging.INFO)
)
