"""Pipeline 모듈 — 스테이지, 필드 매핑, 오케스트레이터.

Stage 순서 (고정):
  TranscriptStage → CompletionStage → SpeechStage
"""
