"""
API Usage Statistics
Aggregates the api_usage_tracking ledger into token, call and cost summaries.
"""

from typing import Dict, Optional

# USD per 1M tokens
GEMINI_INPUT_PRICE = 0.075
GEMINI_OUTPUT_PRICE = 0.30
OPENAI_INPUT_PRICE = 0.15
OPENAI_OUTPUT_PRICE = 0.60


def estimate_cost(provider: str, tokens_input: int, tokens_output: int) -> float:
    """Estimate the USD cost of a call from its token counts."""
    input_m = (tokens_input or 0) / 1_000_000
    output_m = (tokens_output or 0) / 1_000_000

    if provider in ('google', 'gemini'):
        return input_m * GEMINI_INPUT_PRICE + output_m * GEMINI_OUTPUT_PRICE
    if provider == 'openai':
        return input_m * OPENAI_INPUT_PRICE + output_m * OPENAI_OUTPUT_PRICE
    return 0.0


def _build_filters(project_id=None, tool=None, start_date=None, end_date=None):
    conditions = []
    params = []

    if project_id is not None:
        conditions.append('project_id = ?')
        params.append(project_id)
    if tool:
        conditions.append('tool_name = ?')
        params.append(tool)
    if start_date:
        conditions.append('created_at >= ?')
        params.append(start_date)
    if end_date:
        conditions.append('created_at <= ?')
        params.append(f"{end_date} 23:59:59")

    where = 'WHERE ' + ' AND '.join(conditions) if conditions else ''
    return where, params


def get_usage_stats(store, project_id: Optional[int] = None, tool: Optional[str] = None,
                    start_date: Optional[str] = None, end_date: Optional[str] = None) -> Dict:
    """
    Summarize AI usage.

    Args:
        store: CategorizationStore
        project_id: Only count calls for this project
        tool: Only count calls made by this tool
        start_date / end_date: 'YYYY-MM-DD' bounds, inclusive

    Returns:
        Dict with summary, by_provider, by_workflow, daily_trend and pricing_info
    """
    where, params = _build_filters(project_id, tool, start_date, end_date)

    with store.get_db() as conn:
        cursor = conn.cursor()

        cursor.execute(f'''
            SELECT
                COALESCE(SUM(tokens_input), 0) AS total_input_tokens,
                COALESCE(SUM(tokens_output), 0) AS total_output_tokens,
                COALESCE(SUM(tokens_input), 0) + COALESCE(SUM(tokens_output), 0) AS total_tokens,
                COUNT(*) AS total_calls,
                ROUND(COALESCE(AVG(tokens_input), 0), 0) AS avg_input_per_call,
                ROUND(COALESCE(AVG(tokens_output), 0), 0) AS avg_output_per_call
            FROM api_usage_tracking
            {where}
        ''', params)
        summary = dict(cursor.fetchone())

        cursor.execute(f'''
            SELECT
                api_provider,
                COALESCE(model_name, api_provider) AS model_name,
                COALESCE(SUM(tokens_input), 0) AS total_input,
                COALESCE(SUM(tokens_output), 0) AS total_output,
                COUNT(*) AS call_count
            FROM api_usage_tracking
            {where}
            GROUP BY api_provider, model_name
            ORDER BY total_input DESC
        ''', params)
        by_provider = [dict(row) for row in cursor.fetchall()]

        cursor.execute(f'''
            SELECT
                COALESCE(workflow_name, tool_name) AS workflow_name,
                tool_name,
                COALESCE(SUM(tokens_input), 0) AS total_input,
                COALESCE(SUM(tokens_output), 0) AS total_output,
                COUNT(*) AS call_count,
                ROUND(AVG(response_time_ms), 0) AS avg_response_time
            FROM api_usage_tracking
            {where}
            GROUP BY workflow_name, tool_name
            ORDER BY total_input DESC
        ''', params)
        by_workflow = [dict(row) for row in cursor.fetchall()]

        trend_where = f"{where} AND" if where else 'WHERE'
        cursor.execute(f'''
            SELECT
                DATE(created_at) AS date,
                COALESCE(SUM(tokens_input), 0) AS input_tokens,
                COALESCE(SUM(tokens_output), 0) AS output_tokens,
                COUNT(*) AS call_count
            FROM api_usage_tracking
            {trend_where} created_at >= DATE('now', '-30 days')
            GROUP BY DATE(created_at)
            ORDER BY date DESC
        ''', params)
        daily_trend = [dict(row) for row in cursor.fetchall()]

    for provider in by_provider:
        provider['estimated_cost'] = estimate_cost(
            provider['api_provider'], provider['total_input'], provider['total_output']
        )
    summary['estimated_cost_usd'] = f"{sum(p['estimated_cost'] for p in by_provider):.4f}"

    return {
        'summary': summary,
        'by_provider': by_provider,
        'by_workflow': by_workflow,
        'daily_trend': daily_trend,
        'pricing_info': {
            'gemini_input_per_1m': GEMINI_INPUT_PRICE,
            'gemini_output_per_1m': GEMINI_OUTPUT_PRICE,
            'openai_input_per_1m': OPENAI_INPUT_PRICE,
            'openai_output_per_1m': OPENAI_OUTPUT_PRICE
        }
    }
