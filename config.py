"""
設定管理モジュール
JSON形式で設定を保存/読み込み（ファイルに無いキーは DEFAULTS の値）
"""
import copy
import json
import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = 'chrono_ntp_config.json'
DEFAULT_TIMEOUT_MS = 500

# 自動問い合わせ間隔（秒）: ntp.query_interval_index で選択
QUERY_INTERVALS_SEC = (1, 5, 10, 60)

DEFAULTS = {
    'ntp': {
        'server': 'pool.ntp.org',
        'port': 123,
        'timeout_ms': DEFAULT_TIMEOUT_MS,
        'auto_query': False,
        'query_interval_index': 1,
    },
    'language': 'auto',  # 'auto' または 'en' / 'ja'
    'window': {'width': 560, 'height': 480, 'x': None, 'y': None},
    'debug': False,
    'logging': {
        'save_to_file': False,
        'log_file': 'chrono_ntp.log',
        'max_log_size_mb': 10,
    },
    'tray': {'enabled': True},
}


def _merge_known(base, loaded):
    """DEFAULTS にあるキーだけを上書き（ネストした dict は再帰）"""
    for key, value in loaded.items():
        if key not in base:
            continue
        if isinstance(base[key], dict) and isinstance(value, dict):
            _merge_known(base[key], value)
        else:
            base[key] = value


class Config:
    def __init__(self, config_file=DEFAULT_CONFIG_FILE):
        self.config_file = config_file
        self.settings = copy.deepcopy(DEFAULTS)
        self.load()

    def load(self):
        if not os.path.exists(self.config_file):
            return False
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("設定読み込みエラー: %s", e)
            return False
        if not isinstance(loaded, dict):
            logger.warning("設定ファイルの形式が不正です: %s", self.config_file)
            return False
        _merge_known(self.settings, loaded)
        return True

    def save(self):
        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(self.settings, f, indent=4, ensure_ascii=False)
        except OSError as e:
            logger.warning("設定保存エラー: %s", e)
            return False
        return True

    def get(self, *keys):
        """config.get('ntp', 'server')。途中で見つからなければ None"""
        value = self.settings
        for key in keys:
            if not isinstance(value, dict) or key not in value:
                return None
            value = value[key]
        return value

    def set(self, *keys, value):
        """config.set('ntp', 'server', value='time.google.com')"""
        if not keys:
            return False
        node = self.settings
        for key in keys[:-1]:
            node = node.setdefault(key, {})
        node[keys[-1]] = value
        return True

    def reset(self):
        self.settings = copy.deepcopy(DEFAULTS)
        return self.save()

    def timeout_seconds(self):
        """ntp.timeout_ms を秒で返す。数値でない・0以下なら既定値"""
        try:
            ms = int(self.get('ntp', 'timeout_ms'))
        except (TypeError, ValueError):
            ms = 0
        if ms <= 0:
            ms = DEFAULT_TIMEOUT_MS
        return ms / 1000.0

    def query_interval_sec(self):
        idx = self.get('ntp', 'query_interval_index')
        if isinstance(idx, int) and 0 <= idx < len(QUERY_INTERVALS_SEC):
            return QUERY_INTERVALS_SEC[idx]
        return QUERY_INTERVALS_SEC[DEFAULTS['ntp']['query_interval_index']]
