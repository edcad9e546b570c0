import json
import logging
from typing import Dict, Optional

from openai import OpenAI

from ..config import settings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """你是一名服务于货币结算业务的金融数据分析与风控专家。
业务背景：客户以欧元、马币、美元等币种入金，公司按汇率换算为USDT结算，
收入来源为佣金、转账手续费、汇率差和违规赔偿，全部以USDT计价。
请只依据用户提供的数据作答，用简洁专业的中文，严格输出JSON对象。"""


class AiService:
    def __init__(self):
        self.base_url = settings.AI_BASE_URL
        self.api_key = settings.AI_API_KEY
        self.model_name = settings.AI_MODEL_NAME

        self.client: Optional[OpenAI] = None
        if not self.api_key:
            logger.info("未配置AI_API_KEY，AI分析将使用默认建议")
            return
        try:
            self.client = OpenAI(
                base_url=self.base_url,
                api_key=self.api_key
            )
        except Exception as e:
            logger.error(f"Failed to initialize OpenAI client: {e}")
            self.client = None

    def generate_json(self, prompt: str, fields: Dict[str, str], fallback: Dict[str, str]) -> Dict[str, str]:
        """
        调用模型生成结构化结果。

        :param prompt: 用户提示词
        :param fields: 需要返回的字段及说明
        :param fallback: 客户端不可用或调用失败时返回的默认内容
        """
        if not self.client:
            return dict(fallback)

        field_lines = "\n".join(f'- "{name}": {description}' for name, description in fields.items())
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": f"{prompt}\n\n请返回包含以下字段的JSON对象（值均为字符串）：\n{field_lines}"},
        ]
        logger.info(f"======== AI Input ========\n{prompt[:500]}\n==========================")

        try:
            response = self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                response_format={"type": "json_object"}
            )
            content = response.choices[0].message.content or "{}"
            data = json.loads(content)
            if not isinstance(data, dict):
                raise ValueError("AI返回内容不是JSON对象")
        except Exception as e:
            logger.error(f"AI Generation Error: {str(e)}")
            return dict(fallback)

        logger.info(f"======== AI Output ========\n{content}\n===========================")
        return {name: str(data.get(name) or fallback.get(name, "")) for name in fields}
