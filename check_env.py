#!/usr/bin/env python3
"""
アイデア研究所の環境変数と外部サービスの設定をチェックするスクリプト
デプロイ後に実行して確認できます
"""
import os
import sys

from dotenv import load_dotenv

# (変数名, 必須か, 説明)
ENV_VARS = (
    ('SECRET_KEY', True, 'セッション署名用キー'),
    ('DATABASE_URL', False, 'PostgreSQL(Supabase)接続文字列。未設定ならSQLite'),
    ('APP_URL', False, '招待URL・公開URLのベース'),
    ('GEMINI_API_KEY', True, 'AI生成に使用'),
    ('GEMINI_MODEL', False, '使用するGeminiモデル'),
    ('AI_WORKER_URL', False, 'AI生成を別プロセスに委譲する場合のURL'),
    ('AI_WORKER_SECRET_TOKEN', False, 'AIワーカーの共有シークレット'),
    ('APPSYNC_EVENTS_URL', False, 'リアルタイムイベントの配信先'),
    ('APPSYNC_API_KEY', False, 'リアルタイムイベントのAPIキー'),
    ('CLOUDINARY_URL', False, 'アイコン画像の保存先'),
)


def _masked(value):
    if len(value) <= 10:
        return '*' * len(value)
    return f"{value[:6]}...({len(value)} 文字)"


def check_variables():
    print("=" * 60)
    print("環境変数チェック")
    print("=" * 60)

    ok = True
    for name, required, description in ENV_VARS:
        value = os.environ.get(name)
        if value:
            print(f"✅ {name}: {_masked(value)}  # {description}")
        elif required:
            print(f"❌ {name}: 未設定  # {description}")
            ok = False
        else:
            print(f"-  {name}: 未設定  # {description}")

    if os.environ.get('AI_WORKER_URL') and not os.environ.get('AI_WORKER_SECRET_TOKEN'):
        print("\n⚠️ AI_WORKER_URL を使う場合は AI_WORKER_SECRET_TOKEN も設定してください。")
        ok = False
    if bool(os.environ.get('APPSYNC_EVENTS_URL')) != bool(os.environ.get('APPSYNC_API_KEY')):
        print("\n⚠️ APPSYNC_EVENTS_URL と APPSYNC_API_KEY は両方設定してください。")
        ok = False
    return ok


def check_gemini():
    gemini_key = os.environ.get('GEMINI_API_KEY')
    if not gemini_key:
        print("\n⚠️ GEMINI_API_KEY が設定されていないため接続テストをスキップします。")
        return False

    print("\n" + "=" * 60)
    print("Gemini API 接続テスト")
    print("=" * 60)

    model_name = os.environ.get('GEMINI_MODEL', 'gemini-2.5-flash')
    try:
        import google.generativeai as genai

        genai.configure(api_key=gemini_key)
        print("✅ APIキーの設定成功")

        model = genai.GenerativeModel(model_name)
        response = model.generate_content("こんにちは")
        print(f"✅ テストリクエスト成功 ({model_name}): {response.text[:50]}...")
        return True
    except Exception as e:
        print(f"❌ API接続エラー: {e}")
        print(f"エラータイプ: {type(e).__name__}")
        return False


def check_environment():
    load_dotenv()
    variables_ok = check_variables()
    gemini_ok = check_gemini()
    if variables_ok and gemini_ok:
        print("\n🎉 すべてのチェックに成功しました！")
    return variables_ok and gemini_ok


if __name__ == "__main__":
    success = check_environment()
    sys.exit(0 if success else 1)
