import os
import logging
import secrets
from pathlib import Path
from flask import Flask, request, jsonify
from dispatcher.config import JUDGE_TOKEN, get_sandbox_config
from dispatcher.dispatcher import Dispatcher
from dispatcher.evaluator import Evaluator
from dispatcher.exception import (
    DispatcherStoppedError,
    DuplicatedSubmissionIdError,
)
from dispatcher.judge import Judge
from dispatcher.pipeline import BackendSubmissionStore
from runner.sandbox import get_sandbox

LOG_FILE = Path(os.getenv("LOG_FILE", "logs/judge.log"))
LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
logging.basicConfig(
    filename=LOG_FILE,
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
)
app = Flask(__name__)
if __name__ != "__main__":
    # let flask app use gunicorn's logger
    gunicorn_logger = logging.getLogger("gunicorn.error")
    if gunicorn_logger.handlers:
        app.logger.handlers = gunicorn_logger.handlers
        app.logger.setLevel(gunicorn_logger.level)
        logging.getLogger().setLevel(gunicorn_logger.level)
if os.getenv("JUDGE_DEBUG", "").lower() == "true":
    app.logger.setLevel(logging.DEBUG)
    logging.getLogger().setLevel(logging.DEBUG)
logger = app.logger

# setup dispatcher
DISPATCHER_CONFIG = os.getenv(
    "DISPATCHER_CONFIG",
    ".config/dispatcher.json",
)
DISPATCHER = Dispatcher(
    store=BackendSubmissionStore(),
    judge=Judge(Evaluator(get_sandbox(get_sandbox_config()))),
    dispatcher_config=DISPATCHER_CONFIG,
)
DISPATCHER.start()


@app.post("/submit/<submission_id>")
def submit(submission_id: str):
    token = request.values.get("token", "")
    if not secrets.compare_digest(token, JUDGE_TOKEN):
        logger.debug(f"get invalid token: {token}")
        return "invalid token", 403
    logger.debug(f"send submission {submission_id} to dispatcher")
    try:
        admission = DISPATCHER.submit(submission_id)
    except DuplicatedSubmissionIdError as e:
        return (
            jsonify({
                "status": "err",
                "msg": str(e),
                "data": None,
            }),
            409,
        )
    except DispatcherStoppedError:
        return (
            jsonify({
                "status": "err",
                "msg": "judge is shutting down.\n"
                "please re-send the submission later.",
                "data": None,
            }),
            503,
        )
    data = {"mode": admission.mode.value}
    if admission.inline:
        # judged on this request already
        status = admission.future.result()
        data["status"] = status.value if status else None
    return jsonify({
        "status": "ok",
        "msg": "ok",
        "data": data,
    })


@app.get("/status")
def status():
    ret = {
        "load": DISPATCHER.queue.qsize() / DISPATCHER.MAX_TASK_COUNT,
    }
    # if token is provided
    if secrets.compare_digest(JUDGE_TOKEN, request.args.get("token", "")):
        ret.update(DISPATCHER.stats())
        ret["running"] = DISPATCHER.do_run
    return jsonify(ret), 200


# for local debug
# if __name__ == "__main__":
#     app.run(host="0.0.0.0", port=5000, debug=True)
