"""
多言語対応（英語/日本語）
- get(key): 現在の言語の文字列。無ければ英語、それも無ければ None
"""
import locale
import os

STRINGS = {
    'en': {
        'app_title': 'ChronoNTP',
        'ntp_settings': 'NTP Settings',
        'ntp_server': 'NTP Server',
        'start': 'Start',
        'stop': 'Stop',
        'get_time': 'Get time',
        'auto_query': 'Auto query',
        'query_interval': 'Interval',
        'status': 'Status',
        'result': 'Result',
        'ntp_time': 'NTP Time (UTC)',
        'unix_time': 'Unix Time',
        'unix_time_ms': 'Unix Time (ms)',
        'offset': 'Offset',
        'log': 'Log',
        'client_started': 'Client started',
        'client_stopped': 'Client stopped',
        'socket_failed': 'Could not create UDP socket',
        'address_failed': 'Could not resolve NTP server',
        'tray_show': 'Show',
        'tray_quit': 'Quit',
        'result_success': 'Success',
        'result_server_address_not_set': 'Server address not set',
        'result_send_failed': 'Send failed',
        'result_receive_failed': 'No reply (receive failed)',
        'result_socket_creation_failed': 'Socket creation failed',
    },
    'ja': {
        'app_title': 'ChronoNTP',
        'ntp_settings': 'NTP設定',
        'ntp_server': 'NTPサーバー',
        'start': '開始',
        'stop': '停止',
        'get_time': '時刻取得',
        'auto_query': '自動取得',
        'query_interval': '間隔',
        'status': '状態',
        'result': '結果',
        'ntp_time': 'NTP時刻 (UTC)',
        'unix_time': 'Unix時刻',
        'unix_time_ms': 'Unix時刻 (ms)',
        'offset': 'オフセット',
        'log': 'ログ',
        'client_started': 'クライアントを開始しました',
        'client_stopped': 'クライアントを停止しました',
        'socket_failed': 'UDPソケットを作成できません',
        'address_failed': 'NTPサーバーを解決できません',
        'tray_show': '表示',
        'tray_quit': '終了',
        'result_success': '成功',
        'result_server_address_not_set': 'サーバーアドレス未設定',
        'result_send_failed': '送信失敗',
        'result_receive_failed': '応答なし（受信失敗）',
        'result_socket_creation_failed': 'ソケット作成失敗',
    },
}


def detect_system_language():
    """OSロケールから 'ja' / 'en' を推定"""
    lang = (os.environ.get("LANG") or "").lower()
    if lang.startswith("ja"):
        return "ja"
    try:
        loc = (locale.getlocale()[0] or "").lower()
    except ValueError:
        loc = ""
    if loc.startswith("ja"):
        return "ja"
    return "en"


class Localization:
    def __init__(self, language='en'):
        self.language = language if language in STRINGS else 'en'

    def get_available_languages(self):
        return STRINGS.keys()

    def set_language(self, language):
        if language == 'auto':
            language = detect_system_language()
        if language in STRINGS:
            self.language = language
            return True
        return False

    def get(self, key):
        value = STRINGS[self.language].get(key)
        if value is None:
            value = STRINGS['en'].get(key)
        return value

    def result_text(self, code):
        """ResultCode をユーザー向け文字列に"""
        return self.get(f"result_{code.value}") or code.value
