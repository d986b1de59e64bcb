"""
リアルタイムイベントの配信

プロセス内の購読者（SSE）に配信し、AppSync Events が設定されていれば
HTTP で転送する。クライアントはイベント種別を受け取ったら REST API から
最新データを再取得する。
"""
import json
import logging
import os
import queue
import threading

import requests

logger = logging.getLogger(__name__)

APPSYNC_EVENTS_URL = os.environ.get('APPSYNC_EVENTS_URL')
APPSYNC_API_KEY = os.environ.get('APPSYNC_API_KEY')
APPSYNC_TIMEOUT_SECONDS = 5

NAMESPACES = {
    'BRAINWRITING': 'brainwriting',
    'MANDALART': 'mandalart',
    'OSBORN': 'osborn',
}

BRAINWRITING_EVENT_TYPES = {
    'USER_JOINED': 'USER_JOINED',
    'BRAINWRITING_STARTED': 'BRAINWRITING_STARTED',
    'SHEET_ROTATED': 'SHEET_ROTATED',
}

AI_EVENT_TYPES = {
    'AI_GENERATION_COMPLETED': 'AI_GENERATION_COMPLETED',
    'AI_GENERATION_FAILED': 'AI_GENERATION_FAILED',
}

_CHANNEL_PREFIXES = {
    'brainwriting': '/brainwriting',
    'mandalart': '/mandalart',
    'osborn': '/osborn-checklist',
}

# SSE のキープアライブ間隔（秒）
KEEPALIVE_SECONDS = 15


def get_channel(namespace: str, target_id: int) -> str:
    prefix = _CHANNEL_PREFIXES.get(namespace)
    if prefix is None:
        raise ValueError(f'未知の名前空間です: {namespace}')
    return f'{prefix}/{target_id}'


class EventBroker:
    """チャンネルごとの購読キューを保持するプロセス内ブローカー"""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[queue.Queue]] = {}

    def subscribe(self, channel: str) -> queue.Queue:
        q: queue.Queue = queue.Queue()
        with self._lock:
            self._subscribers.setdefault(channel, []).append(q)
        return q

    def unsubscribe(self, channel: str, q: queue.Queue) -> None:
        with self._lock:
            subscribers = self._subscribers.get(channel, [])
            if q in subscribers:
                subscribers.remove(q)
            if not subscribers:
                self._subscribers.pop(channel, None)

    def publish(self, channel: str, data: dict) -> int:
        with self._lock:
            subscribers = list(self._subscribers.get(channel, []))
        for q in subscribers:
            q.put(data)
        return len(subscribers)

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, []))


broker = EventBroker()


def publish_event(namespace: str, channel: str, data: dict) -> None:
    """イベントを配信する。AppSync への転送に失敗した場合は例外を送出"""
    delivered = broker.publish(channel, data)
    logger.debug("Event %s delivered to %d local subscribers on %s", data.get('type'), delivered, channel)

    if not APPSYNC_EVENTS_URL or not APPSYNC_API_KEY:
        return

    response = requests.post(
        APPSYNC_EVENTS_URL,
        headers={
            'Content-Type': 'application/json',
            'x-api-key': APPSYNC_API_KEY,
        },
        json={
            'channel': f'{namespace}{channel}',
            'events': [json.dumps(data, ensure_ascii=False)],
        },
        timeout=APPSYNC_TIMEOUT_SECONDS,
    )
    response.raise_for_status()


def _publish_safely(namespace: str, target_id: int, event_type: str, payload: dict | None = None) -> None:
    data = {'type': event_type, **(payload or {})}
    try:
        publish_event(namespace, get_channel(namespace, target_id), data)
    except Exception as e:
        # イベント配信の失敗で本処理を止めない
        logger.error("イベント配信に失敗しました (%s/%s %s): %s", namespace, target_id, event_type, e)


def publish_brainwriting_event(brainwriting_id: int, event_type: str) -> None:
    _publish_safely(NAMESPACES['BRAINWRITING'], brainwriting_id, event_type)


def publish_mandalart_event(mandalart_id: int, event_type: str, payload: dict | None = None) -> None:
    _publish_safely(NAMESPACES['MANDALART'], mandalart_id, event_type, payload)


def publish_osborn_checklist_event(osborn_checklist_id: int, event_type: str, payload: dict | None = None) -> None:
    _publish_safely(NAMESPACES['OSBORN'], osborn_checklist_id, event_type, payload)


def stream_channel(channel: str):
    """SSE 用のジェネレータ。購読を登録し、切断時に解除する"""
    q = broker.subscribe(channel)

    def generate():
        try:
            yield f"data: {json.dumps({'type': 'CONNECTED', 'channel': channel})}\n\n"
            while True:
                try:
                    data = q.get(timeout=KEEPALIVE_SECONDS)
                except queue.Empty:
                    yield ": keepalive\n\n"
                    continue
                yield f"data: {json.dumps(data, ensure_ascii=False)}\n\n"
        finally:
            broker.unsubscribe(channel, q)

    return generate()
