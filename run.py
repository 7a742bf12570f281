import logging
import sys
from dotenv import load_dotenv
from flask_cors import CORS

# --- Configure logging globally ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]  # ensures logs go to stdout for Docker
)

# --- Load environment variables before settings are read ---
load_dotenv(dotenv_path=".env")

from fareflow import create_app  # noqa: E402

# --- Create and configure Flask app ---
app = create_app()
CORS(app)

if __name__ == "__main__":
    # Don't use debug=True inside Docker in production (Flask debugger isn't safe)
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)
