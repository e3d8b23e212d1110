"""
Airline API - 例外定義

責務:
  - アプリケーション全体で使う例外階層の一元管理
  - 各例外にHTTPステータスを持たせ、エラーミドルウェアで
    {"success": false, "error": ...} に変換できるようにする
"""


class AppError(Exception):
    """全アプリケーション例外の基底クラス"""
    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(AppError):
    """認証失敗（トークン欠落・不正・期限切れ、資格情報不一致）"""
    status = 401


class ForbiddenError(AppError):
    """認可失敗（ロール不足）"""
    status = 403


class ValidationError(AppError):
    """リクエスト内容の不備。モデル層に到達する前に検出する"""
    status = 400


class NotFoundError(AppError):
    status = 404


class ConflictError(AppError):
    """一意制約・参照整合性による競合"""
    status = 409


class DatabaseError(AppError):
    """接続失敗・構文エラー・制約違反などDB起因の失敗"""
    status = 500

    def __init__(self, message: str):
        super().__init__(f"Database error: {message}")


class InternalError(AppError):
    status = 500


class MissingIdentifierError(InternalError):
    """未永続化（IDなし）のリソースに対してupdateを呼んだ"""
