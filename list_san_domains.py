#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
CloudFront SAN ドメイン一覧スクリプト

役割: stack-name タグでスタックに属する CloudFront ディストリビューションを探し、
      各ディストリビューションの代替ドメイン名（Aliases / SAN）と総数を出力する。

使用方法:
    python list_san_domains.py --stack-name <stack-name>
    python list_san_domains.py -stack-name <stack-name>

出力:
    標準出力   … レポート本体（タイムスタンプなし、パイプ/リダイレクト向け）
    標準エラー … 進捗/警告/エラー（タイムスタンプ付き）

認証情報/リージョンは boto3 の既定チェーン（環境変数・~/.aws・インスタンスメタデータ）で解決する。
.env に AWS_PROFILE / AWS_REGION を書いておけばそれを使う（ENV_FILE で別ファイル指定可）。

必要なライブラリ:
    pip install boto3 colorama python-dotenv
"""

import argparse
import os
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, ProfileNotFound
from colorama import Fore, Style, just_fix_windows_console
from dotenv import load_dotenv

# Windows コンソールのみ ANSI 対応にする（他 OS では stdout/stderr を包まない）
just_fix_windows_console()

STACK_TAG_KEY = "stack-name"
DISTRIBUTION_RESOURCE_TYPE = "cloudfront:distribution"

NO_RESOURCES_MESSAGE = "No resources found with the specified tag."


# ========== ログ出力（すべて stderr） ==========
def _timestamp() -> str:
    return datetime.now().strftime("%Y/%m/%d %H:%M:%S")

def _log_info(message: str) -> None:
    """情報ログを出力"""
    print(f"{_timestamp()} {Fore.GREEN}[INFO]{Style.RESET_ALL} {message}", file=sys.stderr)

def _log_warn(message: str) -> None:
    """警告ログを出力"""
    print(f"{_timestamp()} {Fore.YELLOW}[WARN]{Style.RESET_ALL} {message}", file=sys.stderr)

def _log_error(message: str) -> None:
    """エラーログを出力"""
    print(f"{_timestamp()} {Fore.RED}[ERROR]{Style.RESET_ALL} {message}", file=sys.stderr)

def _aws_error_message(error: Exception) -> str:
    if isinstance(error, ClientError):
        err = error.response.get("Error", {})
        code = err.get("Code", "Unknown")
        return f"{code}: {err.get('Message', str(error))}"
    return str(error)


# ========== 設定 ==========
def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.environ.get(name)
    return v if (v is not None and v != "") else default


# ========== セッション ==========
def create_session(profile: Optional[str] = None, region: Optional[str] = None) -> boto3.Session:
    """
    boto3 セッションを生成する。
    profile/region が None なら boto3 の既定解決に任せる。
    ProfileNotFound などの BotoCoreError はそのまま送出する。
    """
    return boto3.Session(profile_name=profile, region_name=region)


# ========== タグ検索 ==========
class TaggedDistributionFinder:
    """Resource Groups Tagging API で stack-name タグ付きのディストリビューションを探す"""

    def __init__(self, client: Any):
        self.client = client

    @classmethod
    def from_session(cls, session: boto3.Session) -> "TaggedDistributionFinder":
        return cls(session.client("resourcegroupstaggingapi"))

    def find(self, stack_name: str) -> List[Dict[str, Any]]:
        """
        stack-name=<stack_name> のディストリビューションを 1 回の GetResources で取得する。
        ページングは行わない。ClientError / BotoCoreError は呼び出し側へ送出する。
        """
        _log_info(f"Sending GetResources request to fetch resources with tag {STACK_TAG_KEY}={stack_name}")
        resp = self.client.get_resources(
            TagFilters=[{"Key": STACK_TAG_KEY, "Values": [stack_name]}],
            ResourceTypeFilters=[DISTRIBUTION_RESOURCE_TYPE],
        )
        return resp.get("ResourceTagMappingList") or []


def extract_distribution_id(arn: str) -> Optional[str]:
    """
    ARN 末尾のディストリビューション ID を取り出す。
    想定形式: arn:aws:cloudfront::<account-id>:distribution/<distribution-id>
    "/" を含まない場合は警告して None。
    """
    parts = arn.split("/")
    if len(parts) < 2:
        _log_warn(f"unexpected ARN format: {arn}")
        return None
    return parts[-1]


# ========== ディストリビューション設定 ==========
class DistributionAliasReader:
    """CloudFront の GetDistributionConfig から Aliases を読む"""

    def __init__(self, client: Any):
        self.client = client

    @classmethod
    def from_session(cls, session: boto3.Session) -> "DistributionAliasReader":
        return cls(session.client("cloudfront"))

    def get_aliases(self, distribution_id: str) -> List[str]:
        """Aliases.Items を返却順のまま返す。Aliases/Items が無ければ空リスト"""
        resp = self.client.get_distribution_config(Id=distribution_id)
        cfg = resp.get("DistributionConfig") or {}
        return list((cfg.get("Aliases") or {}).get("Items") or [])


# ========== レポート（stdout） ==========
def print_distribution(distribution_id: str, aliases: List[str]) -> int:
    """1 ディストリビューション分を出力し、数えたドメイン数を返す"""
    if not aliases:
        print(f"Distribution ID: {distribution_id} has no SAN domains.")
        print()
        return 0
    print(f"Distribution ID: {distribution_id}")
    print("SAN domains:")
    for alias in aliases:
        print(f" - {alias}")
    print()
    return len(aliases)

def print_total(total: int) -> None:
    print(f"Total SAN domains found: {total}")


# ========== メイン処理 ==========
def run(stack_name: str, finder: TaggedDistributionFinder, reader: DistributionAliasReader) -> int:
    """
    検索 → ID 抽出 → 設定取得 → 出力 を順に実行し、終了コードを返す。
    検索失敗のみ致命的（1）。個々のディストリビューションの失敗はスキップして続行する。
    """
    try:
        mappings = finder.find(stack_name)
    except (ClientError, BotoCoreError) as e:
        _log_error(f"failed to get resources by tag: {_aws_error_message(e)}")
        return 1

    if not mappings:
        print(NO_RESOURCES_MESSAGE)
        return 0

    _log_info(f"Found {len(mappings)} distributions for {STACK_TAG_KEY}={stack_name}")

    total_domains = 0
    for mapping in mappings:
        arn = mapping.get("ResourceARN")
        if arn is None:
            continue

        distribution_id = extract_distribution_id(arn)
        if distribution_id is None:
            continue

        _log_info(f"Processing CloudFront distribution: {distribution_id} (ARN: {arn})")
        try:
            aliases = reader.get_aliases(distribution_id)
        except (ClientError, BotoCoreError) as e:
            _log_warn(f"failed to get configuration for distribution {distribution_id}: {_aws_error_message(e)}")
            continue

        total_domains += print_distribution(distribution_id, aliases)

    print_total(total_domains)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """コマンドライン引数パーサーを作成"""
    parser = argparse.ArgumentParser(
        description="stack-name タグで CloudFront ディストリビューションを探し、SAN ドメインを一覧表示する",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
使用例:
  %(prog)s --stack-name prod
  AWS_PROFILE=prod-admin %(prog)s -stack-name prod > san-domains.txt
        """
    )
    parser.add_argument(
        "-stack-name", "--stack-name",
        dest="stack_name",
        default="",
        help="The stack name to filter resources",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """メイン処理"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.stack_name:
        _log_error("You must specify a stack name using the -stack-name flag.")
        sys.exit(2)

    # ---- .env ----
    load_dotenv(os.environ.get("ENV_FILE") or ".env")

    # ---- セッション / クライアント ----
    try:
        session = create_session(_getenv("AWS_PROFILE"), _getenv("AWS_REGION"))
        finder = TaggedDistributionFinder.from_session(session)
        reader = DistributionAliasReader.from_session(session)
    except ProfileNotFound as e:
        _log_error(f"AWS profile not found: {e}")
        sys.exit(2)
    except BotoCoreError as e:
        _log_error(f"failed to load configuration: {e}")
        sys.exit(2)

    try:
        code = run(args.stack_name, finder, reader)
    except KeyboardInterrupt:
        print(file=sys.stderr)
        _log_info("Cancelled by user.")
        sys.exit(130)
    except Exception as e:
        _log_error(f"unexpected error: {str(e)}")
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
