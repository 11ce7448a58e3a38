"""驾驶员状态综合判断模块"""

from typing import List

from models.data_models import (
    DetectionResult,
    RawVisualObservation,
    STATE_DISTRACTED,
    STATE_DRUNK,
    STATE_NORMAL,
    STATE_SLEEPY,
)


class ImpairmentEvaluator:
    """根据视觉观察结果推导醉驾、瞌睡、分心状态和触发原因。"""

    DEFAULT_CONFIDENCE = 75

    # 顺序固定，决定 indicators 的排列
    INDICATOR_LABELS = (
        ("eyes_red", "red eyes"),
        ("eyes_glassy", "glassy eyes"),
        ("eyes_half_closed", "droopy eyelids"),
        ("eyes_closed", "eyes closed"),
        ("face_red", "facial redness"),
        ("looking_away", "looking away"),
    )

    def evaluate(self, observation: RawVisualObservation) -> DetectionResult:
        """
        综合判断驾驶员状态。

        醉驾需要同时满足眼部异常（红/呆滞）和面部或眼睑异常（脸红/半闭）；
        同一帧可能同时判定为醉驾和瞌睡，此时 state 只报告优先级最高的一个。

        Args:
            observation: 归一化后的视觉观察结果

        Returns:
            DetectionResult
        """
        obs = observation
        is_drunk = (obs.eyes_red or obs.eyes_glassy) and (obs.face_red or obs.eyes_half_closed)
        is_sleepy = obs.eyes_closed or obs.eyes_half_closed
        is_distracted = obs.looking_away

        return DetectionResult(
            is_drunk=is_drunk,
            is_sleepy=is_sleepy,
            is_distracted=is_distracted,
            confidence=self._confidence(obs.confidence),
            indicators=tuple(self._indicators(obs)),
            state=self._select_state(is_drunk, is_sleepy, is_distracted),
        )

    def _indicators(self, observation: RawVisualObservation) -> List[str]:
        indicators: List[str] = []
        for attr, label in self.INDICATOR_LABELS:
            if getattr(observation, attr):
                indicators.append(label)
        return indicators

    @staticmethod
    def _select_state(is_drunk: bool, is_sleepy: bool, is_distracted: bool) -> str:
        """优先级：醉驾 > 瞌睡 > 分心 > 正常。"""
        if is_drunk:
            return STATE_DRUNK
        if is_sleepy:
            return STATE_SLEEPY
        if is_distracted:
            return STATE_DISTRACTED
        return STATE_NORMAL

    def _confidence(self, value) -> float:
        if value is None:
            return self.DEFAULT_CONFIDENCE
        return min(100.0, max(0.0, value))
