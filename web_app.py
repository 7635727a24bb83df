from __future__ import annotations

import asyncio
import base64
import concurrent.futures
import json
import logging
import shutil
import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Ensure rep and report logging is visible when running under uvicorn
logging.getLogger("lungesense.reps").setLevel(logging.INFO)
logging.getLogger("lungesense.report").setLevel(logging.INFO)

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi import WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse

import cv2
import numpy as np

from run import run_offline
from lungesense.config import LungeConfig
from lungesense.pose import create_pose_detector, detect_landmarks
from lungesense.report import run_session_report, write_session_metrics
from lungesense.reps import LungeRepCounter

logger = logging.getLogger("lungesense.web")

APP_ROOT = Path(__file__).resolve().parent
CONFIG = LungeConfig.from_env()

app = FastAPI(title="LungeSense")

# Background analysis jobs (job_id -> {status, result, created})
_JOB_STORE: dict[str, dict] = {}
_JOB_LOCK = threading.Lock()
_MAX_JOBS = 100

# Pose runs off the event loop so the socket keeps answering pings
_LIVE_EXECUTOR = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="live_pose")


def _run_analysis_background(job_id: str, upload_path: str, job_dir: str) -> None:
    try:
        run_offline(upload_path, output_dir=job_dir, config=CONFIG)
        report_path = Path(job_dir) / "report.html"
        report_html = _extract_body(report_path.read_text()) if report_path.exists() else ""
        with _JOB_LOCK:
            _JOB_STORE[job_id]["status"] = "done"
            _JOB_STORE[job_id]["result"] = report_html
    except Exception as e:
        logger.exception("analyze: job %s failed", job_id)
        with _JOB_LOCK:
            _JOB_STORE[job_id]["status"] = "error"
            _JOB_STORE[job_id]["result"] = str(e)
    shutil.rmtree(job_dir, ignore_errors=True)


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>{title}</title>
    <style>
      body {{ font-family: -apple-system, BlinkMacSystemFont, sans-serif; background: #07090d; color: #f0f4f8;
             max-width: 860px; margin: 0 auto; padding: 24px; }}
      .card {{ background: #0f1319; border: 1px solid #1e293b; border-radius: 12px; padding: 20px; margin: 16px 0; }}
      .muted {{ color: #94a3b8; }}
      button {{ background: #06b6d4; color: #07090d; border: 0; border-radius: 8px; padding: 8px 16px; font-weight: 600; }}
      button:disabled {{ opacity: 0.4; }}
      .stage {{ position: relative; }}
      video, canvas.overlay {{ width: 100%; border-radius: 12px; }}
      canvas.overlay {{ position: absolute; left: 0; top: 0; }}
      table {{ border-collapse: collapse; }} td, th {{ padding: 4px 8px; }}
    </style>
  </head>
  <body>
{body}
  </body>
</html>"""


def _waiting_page(job_id: str) -> str:
    return _page(
        "Analyzing…",
        f"""
    <div class="card" style="text-align:center;">
      <h3>Analyzing your video</h3>
      <p id="pollStatus" class="muted">Checking…</p>
    </div>
    <script>
      const statusEl = document.getElementById("pollStatus");
      function poll() {{
        fetch("/analyze/result/{job_id}")
          .then(r => {{
            if (r.status === 200) return r.text().then(html => {{ document.open(); document.write(html); document.close(); }});
            if (r.status === 202) {{ statusEl.textContent = "Still analyzing…"; setTimeout(poll, 2500); return; }}
            return r.text().then(t => {{ statusEl.textContent = "Error: " + (t || r.status); }});
          }})
          .catch(err => {{ statusEl.textContent = "Error: " + (err.message || "network"); }});
      }}
      setTimeout(poll, 1500);
    </script>
    """,
    )


def _extract_body(html: str) -> str:
    lower = html.lower()
    if "<body" in lower and "</body>" in lower:
        start = lower.find("<body")
        start = lower.find(">", start) + 1
        end = lower.rfind("</body>")
        return html[start:end].strip()
    return html


def _render_homepage(report_html: Optional[str] = None) -> HTMLResponse:
    report_block = f"<div class='card'><h3>Latest report</h3>{report_html}</div>" if report_html else ""
    body = """
    <h1>LungeSense</h1>
    <p class="muted">Alternating lunges: live rep counting, leg alternation and form cues.</p>
    <div id="reportContainer">__REPORT__</div>

    <div class="card">
      <h3>Upload a video</h3>
      <form action="/analyze" method="post" enctype="multipart/form-data">
        <input type="file" name="video" accept="video/*" required />
        <button type="submit">Analyze</button>
      </form>
    </div>

    <div class="card">
      <h3>Live</h3>
      <p><button id="liveStart">Start</button> <button id="liveStop" disabled>Stop</button>
         <span id="liveStatus" class="muted">idle</span></p>
      <div class="stage">
        <video id="livePreview" playsinline muted></video>
        <canvas id="liveOverlay" class="overlay"></canvas>
      </div>
      <canvas id="captureCanvas" style="display:none"></canvas>
    </div>

    <script>
      const LEG_EDGES = [[11,12],[11,23],[12,24],[23,24],[23,25],[25,27],[24,26],[26,28],[27,31],[28,32]];
      const livePreview = document.getElementById("livePreview");
      const liveOverlay = document.getElementById("liveOverlay");
      const captureCanvas = document.getElementById("captureCanvas");
      const liveStart = document.getElementById("liveStart");
      const liveStop = document.getElementById("liveStop");
      const statusEl = document.getElementById("liveStatus");
      const liveCtx = liveOverlay.getContext("2d");
      let liveWs = null, liveStream = null, liveTimer = null;
      let cue = null, cueTime = 0, lastStatus = "";

      const drawOverlay = (data) => {
        liveOverlay.width = livePreview.videoWidth || 640;
        liveOverlay.height = livePreview.videoHeight || 480;
        const w = liveOverlay.width, h = liveOverlay.height;
        liveCtx.clearRect(0, 0, w, h);
        if (data.feedback) { cue = data.feedback; cueTime = Date.now(); }
        if (data.status_message) lastStatus = data.status_message.replace(/\\n/g, " | ");
        const p = data.progress;
        liveCtx.fillStyle = "rgba(0,0,0,0.5)";
        liveCtx.fillRect(0, 0, w, 74);
        liveCtx.fillStyle = "#fff";
        liveCtx.font = "16px sans-serif";
        liveCtx.fillText(`Reps: ${data.rep_count} | ${data.in_lunge ? "Lunging" : "Standing"} | Progress: ${p == null ? "--" : p.toFixed(2)}`, 12, 24);
        liveCtx.fillText(lastStatus, 12, 48);
        liveCtx.fillStyle = "#06b6d4";
        if (p != null) liveCtx.fillRect(w - 30, h - p * (h - 90), 18, p * (h - 90));
        if (cue && Date.now() - cueTime < 1500) {
          liveCtx.fillStyle = "#ffc800";
          liveCtx.font = "22px sans-serif";
          liveCtx.fillText(cue, 24, h / 2);
        }
        if (Array.isArray(data.keypoints)) {
          liveCtx.strokeStyle = "#00ff7f";
          liveCtx.lineWidth = 2;
          LEG_EDGES.forEach(([a, b]) => {
            const pa = data.keypoints[a], pb = data.keypoints[b];
            if (!pa || !pb) return;
            liveCtx.beginPath();
            liveCtx.moveTo(pa[0] * w, pa[1] * h);
            liveCtx.lineTo(pb[0] * w, pb[1] * h);
            liveCtx.stroke();
          });
        }
      };

      const sendFrame = () => {
        if (!liveWs || liveWs.readyState !== 1 || !liveStream) return;
        const vw = livePreview.videoWidth, vh = livePreview.videoHeight;
        if (!vw || !vh) return;
        captureCanvas.width = vw;
        captureCanvas.height = vh;
        captureCanvas.getContext("2d").drawImage(livePreview, 0, 0, vw, vh);
        liveWs.send(JSON.stringify({ image: captureCanvas.toDataURL("image/jpeg", 0.7) }));
      };

      liveStart.onclick = async () => {
        try {
          liveStream = await navigator.mediaDevices.getUserMedia({ video: true, audio: false });
          livePreview.srcObject = liveStream;
          await livePreview.play();
          const wsProto = location.protocol === "https:" ? "wss" : "ws";
          liveWs = new WebSocket(`${wsProto}://${location.host}/ws/live`);
          liveWs.onopen = () => {
            statusEl.textContent = "connected";
            liveTimer = setInterval(sendFrame, 80);
            liveStart.disabled = true;
            liveStop.disabled = false;
          };
          liveWs.onmessage = (evt) => {
            const data = JSON.parse(evt.data);
            if (data.type === "report") {
              document.getElementById("reportContainer").innerHTML =
                `<div class="card"><h3>Latest report</h3>${data.html}</div>`;
              return;
            }
            drawOverlay(data);
          };
          liveWs.onclose = () => { statusEl.textContent = "disconnected"; };
        } catch (err) {
          statusEl.textContent = "camera error: " + err.message;
        }
      };

      liveStop.onclick = () => {
        if (liveTimer) clearInterval(liveTimer);
        if (liveWs && liveWs.readyState === 1) liveWs.send(JSON.stringify({ type: "stop", save: true }));
        if (liveStream) liveStream.getTracks().forEach(t => t.stop());
        liveStart.disabled = false;
        liveStop.disabled = true;
        statusEl.textContent = "stopped";
      };
    </script>
    """
    body = body.replace("__REPORT__", report_block)
    return HTMLResponse(_page("LungeSense", body))


@app.get("/", response_class=HTMLResponse)
def index() -> HTMLResponse:
    return _render_homepage()


@app.post("/analyze")
def analyze(video: UploadFile = File(...)) -> HTMLResponse:
    if not video.filename:
        raise HTTPException(status_code=400, detail="Missing file name.")
    suffix = Path(video.filename).suffix.lower()
    if suffix not in {".mp4", ".mov", ".mkv", ".avi", ".webm"}:
        raise HTTPException(status_code=400, detail="Unsupported file type.")

    job_id = str(uuid.uuid4())
    job_dir = Path(tempfile.gettempdir()) / "lungesense_jobs" / job_id
    job_dir.mkdir(parents=True, exist_ok=True)
    upload_path = job_dir / f"upload{suffix}"
    with upload_path.open("wb") as f:
        shutil.copyfileobj(video.file, f)

    with _JOB_LOCK:
        while len(_JOB_STORE) >= _MAX_JOBS:
            oldest = min(_JOB_STORE.items(), key=lambda x: x[1].get("created", 0))
            del _JOB_STORE[oldest[0]]
        _JOB_STORE[job_id] = {"status": "pending", "result": None, "created": time.time()}

    thread = threading.Thread(
        target=_run_analysis_background,
        args=(job_id, str(upload_path), str(job_dir)),
        daemon=True,
    )
    thread.start()

    return HTMLResponse(_waiting_page(job_id), status_code=202)


@app.get("/analyze/result/{job_id}", response_class=HTMLResponse)
def analyze_result(job_id: str) -> HTMLResponse:
    with _JOB_LOCK:
        job = _JOB_STORE.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found or expired.")
    status = job.get("status", "pending")
    result = job.get("result")
    if status == "pending":
        return HTMLResponse(_waiting_page(job_id), status_code=202)
    if status == "error":
        err_msg = (result or "Analysis failed.").replace("<", "&lt;").replace(">", "&gt;")
        return _render_homepage(f'<div class="card"><h3>Analysis failed</h3><p class="muted">{err_msg}</p></div>')
    return _render_homepage(result)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


def _decode_frame(image_data: str) -> Optional[np.ndarray]:
    """Decode a base64 (optionally data-URL) JPEG/PNG into a BGR frame, or None."""
    if image_data.startswith("data:"):
        image_data = image_data.split(",", 1)[1]
    try:
        img_bytes = base64.b64decode(image_data)
    except ValueError:
        return None
    if not img_bytes:
        return None
    return cv2.imdecode(np.frombuffer(img_bytes, np.uint8), cv2.IMREAD_COLOR)


def _session_report_html(counter: LungeRepCounter) -> str:
    with tempfile.TemporaryDirectory() as tmpdir:
        metrics_path = write_session_metrics(counter.session_summary(), str(Path(tmpdir) / "live_metrics.json"))
        report_path = run_session_report(metrics_path, tmpdir, source="live-web")
        return _extract_body(Path(report_path).read_text())


@app.websocket("/ws/live")
async def live_socket(websocket: WebSocket) -> None:
    await websocket.accept()
    logger.info("live: session started")
    pose = create_pose_detector()
    counter = LungeRepCounter(CONFIG)
    frame_idx = 0
    loop = asyncio.get_running_loop()
    try:
        while True:
            msg = await websocket.receive_text()
            try:
                payload = json.loads(msg)
            except json.JSONDecodeError:
                continue
            if not isinstance(payload, dict):
                continue
            if payload.get("type") == "stop":
                logger.info("live: stop received, rep_count=%s", counter.rep_count)
                if payload.get("save", True):
                    report_html = await loop.run_in_executor(_LIVE_EXECUTOR, _session_report_html, counter)
                    await websocket.send_text(json.dumps({"type": "report", "html": report_html}))
                await websocket.close()
                return
            image_data = payload.get("image")
            if not image_data or not isinstance(image_data, str):
                continue
            frame_bgr = _decode_frame(image_data)
            if frame_bgr is None:
                continue

            def _process_frame_sync() -> tuple:
                subjects = detect_landmarks(frame_bgr, pose)
                return subjects, counter.process_frame(subjects)

            subjects, result = await loop.run_in_executor(_LIVE_EXECUTOR, _process_frame_sync)
            frame_idx += 1
            if frame_idx % 60 == 0:
                logger.info("live: frame %s (rep_count=%s)", frame_idx, counter.rep_count)

            out = result.to_dict()
            out["keypoints"] = [[lm.x, lm.y] for lm in subjects[0]] if subjects else None
            await websocket.send_text(json.dumps(out))
    except WebSocketDisconnect:
        logger.info("live: client disconnected (frames=%s, rep_count=%s)", frame_idx, counter.rep_count)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web_app:app", host="0.0.0.0", port=8000, reload=True)
