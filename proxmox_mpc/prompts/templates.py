"""Built-in prompt templates."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PromptTemplate:
    """A named prompt with ``{{variable}}`` placeholders."""

    name: str
    description: str
    template: str
    variables: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "template": self.template,
            "variables": list(self.variables),
        }


TROUBLESHOOT = PromptTemplate(
    name="troubleshoot",
    description="Troubleshooting assistant for infrastructure issues",
    variables=("issue", "component", "severity", "timeRange", "context"),
    template="""# Infrastructure Troubleshooting Assistant

## Issue Analysis
**Issue**: {{issue}}
**Component**: {{component}}
**Severity**: {{severity}}
**Time Range**: {{timeRange}}

## Context
- Workspace: {{workspacePath}}
- Current infrastructure state available via resources
- Recent logs and metrics available for analysis

## Additional Context
{{context}}

## Troubleshooting Steps
1. **Identify the Problem**: Analyze the reported issue and gather symptoms
2. **Check System Health**: Review overall system status and component health
3. **Examine Recent Changes**: Look for recent deployments or configuration changes
4. **Analyze Logs**: Review error and operation logs for the relevant period
5. **Performance Analysis**: Check metrics for bottlenecks or anomalies
6. **Root Cause Analysis**: Identify the underlying cause of the issue
7. **Resolution Plan**: Propose specific steps to resolve the issue
8. **Prevention**: Suggest measures to prevent similar issues

## Available Tools
- runDiagnostics: Comprehensive system diagnostics
- generateHealthReport: Current system health status
- generatePerformanceReport: Performance metrics analysis

Please analyze the available infrastructure resources, logs, and diagnostics to provide a troubleshooting assessment.""",
)

OPTIMIZE = PromptTemplate(
    name="optimize",
    description="Infrastructure optimization recommendations",
    variables=("focus", "budget", "timeframe", "constraints", "context"),
    template="""# Infrastructure Optimization Assistant

## Optimization Focus
**Focus Area**: {{focus}}
**Budget Constraints**: {{budget}}
**Timeframe**: {{timeframe}}
**Constraints**: {{constraints}}

## Context
- Workspace: {{workspacePath}}
- Current infrastructure resources and utilization available
- Performance metrics and historical data available

## Additional Context
{{context}}

## Optimization Analysis Framework
1. **Current State Assessment**: Analyze existing infrastructure and performance
2. **Resource Utilization**: Review CPU, memory, storage and network usage patterns
3. **Performance Bottlenecks**: Identify system constraints and limitations
4. **Cost Analysis**: Evaluate resource costs and allocation efficiency
5. **Scalability Assessment**: Review the ability to handle growth
6. **Optimization Opportunities**: Identify specific areas for improvement
7. **Implementation Plan**: Prioritized recommendations with impact assessment
8. **Monitoring Strategy**: Ongoing optimization and performance tracking

## Available Tools
- generatePerformanceReport: Detailed performance analysis
- runDiagnostics: System health and resource utilization
- generatePlan: Implementation planning with cost analysis

Please analyze the current infrastructure state and provide specific, actionable optimization recommendations.""",
)

PLAN = PromptTemplate(
    name="plan",
    description="Infrastructure planning and deployment assistant",
    variables=("objective", "scope", "timeline", "requirements", "context"),
    template="""# Infrastructure Planning Assistant

## Planning Objective
**Objective**: {{objective}}
**Scope**: {{scope}}
**Timeline**: {{timeline}}
**Requirements**: {{requirements}}

## Context
- Workspace: {{workspacePath}}
- Current infrastructure state and resources available
- Existing configurations and deployment patterns

## Additional Context
{{context}}

## Planning Framework
1. **Requirements Analysis**: Define functional and non-functional requirements
2. **Current State Assessment**: Analyze existing infrastructure and capabilities
3. **Gap Analysis**: Identify what needs to be added, changed, or removed
4. **Architecture Design**: Design the target infrastructure
5. **Risk Assessment**: Identify risks and mitigation strategies
6. **Resource Planning**: Calculate required compute, storage and network resources
7. **Implementation Strategy**: Define deployment phases and rollback plans
8. **Success Criteria**: Establish measurable outcomes and validation tests

## Available Tools
- generatePlan: Implementation planning with costs and risks
- validateInfrastructure: Pre-deployment validation
- deployInfrastructure: Deployment execution with dry-run support

Please analyze the requirements and current state to develop an infrastructure plan.""",
)

ANALYZE = PromptTemplate(
    name="analyze",
    description="Comprehensive infrastructure analysis",
    variables=("analysisType", "timeRange", "components", "depth", "context"),
    template="""# Infrastructure Analysis Assistant

## Analysis Parameters
**Analysis Type**: {{analysisType}}
**Time Range**: {{timeRange}}
**Components**: {{components}}
**Analysis Depth**: {{depth}}

## Context
- Workspace: {{workspacePath}}
- Full infrastructure state and resource inventory available
- Historical performance data and operational logs

## Additional Context
{{context}}

## Analysis Framework
1. **Scope Definition**: Define analysis boundaries and objectives
2. **Data Collection**: Gather relevant infrastructure data and metrics
3. **Pattern Analysis**: Identify trends, anomalies and usage patterns
4. **Performance Assessment**: Evaluate performance and efficiency
5. **Capacity Planning**: Assess utilization and future needs
6. **Risk Evaluation**: Identify potential issues and vulnerabilities
7. **Recommendations**: Provide actionable insights
8. **Reporting**: Summarize findings with supporting evidence

## Available Tools
- runDiagnostics: System diagnostics and health checks
- generatePerformanceReport: Performance metrics and analysis
- generateHealthReport: System health and component assessment

Please perform an analysis of the infrastructure based on the specified parameters.""",
)

BUILTIN_TEMPLATES: tuple[PromptTemplate, ...] = (TROUBLESHOOT, OPTIMIZE, PLAN, ANALYZE)
