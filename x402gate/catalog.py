"""
Static payloads served once a priced resource has been paid for.
"""
from typing import Any, Dict, Optional

SERVICE_PAYLOADS: Dict[str, Dict[str, Any]] = {
    '/api/japanese-news': {
        'service': 'Japanese News Learning Platform',
        'data': {
            'articles': [
                {
                    'title': '札幌で大雪',
                    'prefecture': '北海道',
                    'jlptLevel': 'N3',
                    'vocabulary': ['大雪', '交通', '影響'],
                },
            ],
            'total_count': 1000,
            'prefectures': 47,
            'features': [
                'JLPT level detection (N5-N1)',
                'Automatic vocabulary extraction',
                'Grammar pattern recognition',
                'Prefecture-based filtering',
            ],
        },
        'access': {
            'api': 'https://japan-news-map.vercel.app/api',
            'demo': 'https://japan-news-map.vercel.app/demo.html',
        },
    },
    '/api/web-scraper': {
        'service': 'Web Scraper',
        'status': 'job_created',
        'capabilities': [
            'RSS/Atom feed parsing',
            'Rate limiting & respectful crawling',
            'Structured data extraction (JSON/CSV)',
            'Incremental updates',
        ],
        'deliverables': {
            'formats': ['JSON', 'CSV', 'SQLite'],
            'delivery_method': 'API endpoint or file download',
            'estimated_time': '24-48 hours',
        },
        'next_steps': 'Reply with target URL and data requirements to start the job',
    },
    '/api/ai-analysis': {
        'service': 'AI Data Analysis',
        'capabilities': [
            'Summarization & key insights extraction',
            'Multi-class classification',
            'Sentiment analysis (positive/negative/neutral)',
            'Entity recognition (NER)',
            'Topic modeling',
        ],
        'usage': {
            'input_limit': '100K tokens (~75K words)',
            'output_format': 'JSON with confidence scores',
        },
        'next_steps': 'Upload dataset (JSON/CSV/TXT) or provide data source URL',
    },
    '/api/reverse-engineering': {
        'service': 'Product Reverse Engineering',
        'deliverables': [
            'Complete tech stack analysis',
            'API endpoints documentation (if applicable)',
            'Data flow diagrams',
            'Database schema inference',
            'Performance optimization suggestions',
        ],
        'process': {
            'step1': 'Initial reconnaissance & crawling',
            'step2': 'Traffic analysis & API mapping',
            'step3': 'Documentation generation',
            'estimated_duration': '3-7 days',
        },
        'next_steps': 'Provide target product URL or name for analysis',
    },
}


def service_payload(path: str, description: Optional[str] = None) -> Dict[str, Any]:
    payload = SERVICE_PAYLOADS.get(path)
    if payload is None:
        return {'service': description or path}
    return dict(payload)
