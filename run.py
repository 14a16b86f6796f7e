# run.py
from storefront.config import Config
from storefront.main import app

if __name__ == "__main__":
    # threaded so the event stream does not block other requests
    app.run(
        debug=Config.DEBUG,
        host=Config.FLASK_RUN_HOST,
        port=Config.FLASK_RUN_PORT,
        threaded=True,
    )
