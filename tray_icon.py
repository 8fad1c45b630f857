"""
システムトレイアイコン管理モジュール
アイコンの色で直近の問い合わせ結果を表示する（緑=成功 / 赤=失敗 / 灰=停止中）
"""
import pystray
from PIL import Image, ImageDraw
import threading

from ntp_client import ResultCode

STOPPED_COLOR = 'gray'


def color_for_result(code):
    """ResultCode → アイコン色"""
    if code is None:
        return STOPPED_COLOR
    if code is ResultCode.SUCCESS:
        return 'green'
    if code is ResultCode.RECEIVE_FAILED:
        return 'orange'
    return 'red'


class TrayIcon:
    def __init__(self, app_title="ChronoNTP", on_show=None, on_query=None, on_quit=None,
                 labels=None):
        self.app_title = app_title
        self.on_show = on_show
        self.on_query = on_query
        self.on_quit = on_quit
        self.labels = labels or {}
        self.icon = None
        self.icon_thread = None
        self.is_running = False

    def create_icon_image(self, color=STOPPED_COLOR):
        """トレイアイコン画像を作成（背景色 + 時計）"""
        width = 64
        height = 64
        image = Image.new('RGB', (width, height), color='white')
        dc = ImageDraw.Draw(image)

        dc.rectangle([0, 0, width, height], fill=color)

        margin = 8
        dc.ellipse([margin, margin, width-margin, height-margin], fill='white', outline='black', width=2)

        # 時計の針
        center_x = width // 2
        center_y = height // 2
        dc.line([center_x, center_y, center_x, center_y - 15], fill='black', width=3)
        dc.line([center_x, center_y, center_x + 10, center_y], fill='black', width=2)
        dc.ellipse([center_x-3, center_y-3, center_x+3, center_y+3], fill='red')

        return image

    def create_menu(self):
        return pystray.Menu(
            pystray.MenuItem(self.labels.get('show', "Show"), self._on_show_clicked, default=True),
            pystray.MenuItem(self.labels.get('get_time', "Get time"), self._on_query_clicked),
            pystray.MenuItem(self.labels.get('quit', "Quit"), self._on_quit_clicked)
        )

    def _on_show_clicked(self, icon, item):
        if self.on_show:
            self.on_show()

    def _on_query_clicked(self, icon, item):
        if self.on_query:
            self.on_query()

    def _on_quit_clicked(self, icon, item):
        self.stop()
        if self.on_quit:
            self.on_quit()

    def start(self):
        """トレイアイコンを表示（別スレッドで実行）"""
        if self.is_running:
            return

        self.icon = pystray.Icon(
            name="chrono_ntp",
            icon=self.create_icon_image(),
            title=self.app_title,
            menu=self.create_menu()
        )
        self.is_running = True

        self.icon_thread = threading.Thread(target=self.icon.run, daemon=True)
        self.icon_thread.start()

    def stop(self):
        if self.icon and self.is_running:
            self.icon.stop()
            self.is_running = False

    def show_result(self, code, detail=""):
        """直近の結果をアイコン色とツールチップに反映"""
        if not self.icon:
            return
        self.icon.icon = self.create_icon_image(color_for_result(code))
        self.icon.title = f"{self.app_title} - {detail}" if detail else self.app_title
