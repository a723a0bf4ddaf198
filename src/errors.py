"""
アプリケーション固有の例外定義モジュール。

tosu からの取得、譜面の解析、難易度計算、msd.json の書き出しで発生する例外を
分類して扱うために、基底例外および派生例外を定義する。

分類方針:
- TransientFetchError: 通信系。WARNING で記録し、次の tick で再試行する。
- ChartContentError: 譜面内容・計算系。ERROR で記録し、dedupe キーは進めない。
- PublishError: 書き出し系。WARNING で記録する。
- ConfigError / EngineInitError: 起動時の致命的エラー。
"""


class MsdSyncError(Exception):
    """MSD 同期システム全体の基底例外。"""


class TransientFetchError(MsdSyncError):
    """tosu API からの取得に失敗した場合の例外。"""


class StateFetchError(TransientFetchError):
    """/json/v2 の取得またはデコードに失敗した場合の例外。"""


class ChartFetchError(TransientFetchError):
    """譜面ファイルの取得に失敗した場合の例外。"""


class EmptyChartError(ChartFetchError):
    """譜面ファイルのレスポンスが空だった場合の例外。"""


class ChartContentError(MsdSyncError):
    """譜面内容の解釈、または難易度計算に失敗した場合の例外。"""


class ChartDecodeError(ChartContentError):
    """譜面バイト列をテキストとしてデコードできない場合の例外。"""


class ChartParseError(ChartContentError):
    """譜面テキストのパースに失敗した場合の例外。"""


class ChartValidationError(ChartContentError):
    """パース結果が計算対象の条件を満たさない場合の例外。"""


class EngineComputeError(ChartContentError):
    """難易度エンジンの計算呼び出しが失敗した場合の例外。"""


class PublishError(MsdSyncError):
    """msd.json の書き出しに失敗した場合の例外。"""


class ConfigError(MsdSyncError):
    """設定ファイルが読めない、または必須設定が欠けている場合の例外。"""


class EngineInitError(MsdSyncError):
    """難易度エンジンの初期化に失敗した場合の例外。"""
