"""Content of every step the catalog can emit.

Templates carry the role-independent parts of a step (title, estimate,
instructions, examples, validation criteria). Dependencies are wired per
role in :mod:`onboarding_flow.catalog.steps` because the same step can sit
at different places in different catalogs.
"""

from dataclasses import dataclass

from onboarding_flow.models.domain import ValidationCriterion


@dataclass(frozen=True)
class StepTemplate:
    title: str
    description: str
    estimated_time: int
    instructions: tuple[str, ...]
    code_examples: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    validation_criteria: tuple[ValidationCriterion, ...] = ()
    validator: str | None = None


STEP_TEMPLATES: dict[str, StepTemplate] = {
    # Agent
    "context-loading": StepTemplate(
        title="Load Project Context",
        description="Load the machine-readable project context and conventions",
        estimated_time=1,
        instructions=(
            "Fetch the project context document",
            "Index the module layout and coding conventions",
        ),
        code_examples=("curl -s $ONBOARDING_URL/context.json",),
        categories=("agent", "context"),
        validation_criteria=(
            ValidationCriterion("context_loaded", "true", "Project context is available"),
        ),
        validator="context-loaded",
    ),
    "schema-validation": StepTemplate(
        title="Validate Context Schema",
        description="Check the loaded context against the published schema version",
        estimated_time=1,
        instructions=("Compare the context schema version with the supported version",),
        categories=("agent", "validation"),
        validation_criteria=(
            ValidationCriterion("schema_version", "1", "Schema version is supported"),
        ),
        validator="schema-valid",
    ),
    "integration-test": StepTemplate(
        title="Integration Testing",
        description="Run the integration test suite across all layers",
        estimated_time=20,
        instructions=(
            "Start every service the suite depends on",
            "Run the integration test suite",
            "Verify cross-layer data flow",
        ),
        code_examples=("npm run test:integration",),
        categories=("testing", "integration"),
        validation_criteria=(
            ValidationCriterion("command_success", "npm run test:integration", "Integration tests pass"),
        ),
    ),
    # Human, role-less
    "role-selection": StepTemplate(
        title="Select Your Role",
        description="Choose the developer role that matches your work",
        estimated_time=2,
        instructions=(
            "Review the available roles: frontend, backend, devops, fullstack",
            "Pick the role closest to your day-to-day work",
        ),
        categories=("orientation",),
    ),
    # Common human steps
    "environment-setup": StepTemplate(
        title="Development Environment Setup",
        description="Install Node.js, npm and git",
        estimated_time=15,
        instructions=(
            "Install Node.js 20 or newer",
            "Install npm 10 or newer",
            "Install git and configure your identity",
        ),
        code_examples=("node --version", "npm --version", "git --version"),
        categories=("setup", "environment"),
        validation_criteria=(
            ValidationCriterion("version", ">=20.0.0", "Node.js 20 or higher"),
            ValidationCriterion("version", ">=10.0.0", "npm 10 or higher"),
        ),
        validator="runtime-version",
    ),
    "repository-clone": StepTemplate(
        title="Clone Repository",
        description="Clone the project repository and switch to the main branch",
        estimated_time=5,
        instructions=("Clone the repository", "Check out the main branch"),
        code_examples=("git clone <repository-url>", "cd <project> && git checkout main"),
        categories=("setup", "git"),
        validation_criteria=(
            ValidationCriterion("directory_exists", ".git", "Repository is cloned"),
        ),
        validator="repository-cloned",
    ),
    "dependency-install": StepTemplate(
        title="Install Dependencies",
        description="Install the project's package dependencies",
        estimated_time=10,
        instructions=("Run a clean install from the lock file",),
        code_examples=("npm ci",),
        categories=("setup", "dependencies"),
        validation_criteria=(
            ValidationCriterion("file_exists", "node_modules", "Dependencies installed"),
            ValidationCriterion("file_exists", "package-lock.json", "Lock file present"),
        ),
        validator="dependencies-installed",
    ),
    "lint-check": StepTemplate(
        title="Run Linters",
        description="Run the linters and formatters used in code review",
        estimated_time=5,
        instructions=("Run the lint script", "Fix any reported issues"),
        code_examples=("npm run lint",),
        categories=("quality",),
        validation_criteria=(ValidationCriterion("command_success", "npm run lint", "Lint passes"),),
    ),
    "first-change": StepTemplate(
        title="Make Your First Change",
        description="Open a small pull request to exercise the contribution workflow",
        estimated_time=30,
        instructions=(
            "Create a feature branch",
            "Make a small, reviewed change",
            "Open a pull request and address review feedback",
        ),
        code_examples=("git checkout -b onboarding/first-change",),
        categories=("contribution",),
    ),
    "documentation-review": StepTemplate(
        title="Review Project Documentation",
        description="Read the architecture overview and contribution guide",
        estimated_time=15,
        instructions=(
            "Read the architecture overview",
            "Read the contribution guide",
        ),
        categories=("documentation",),
    ),
    # Frontend
    "dev-server-start": StepTemplate(
        title="Start Development Server",
        description="Start the frontend development server",
        estimated_time=5,
        instructions=("Start the dev server", "Open http://localhost:3000"),
        code_examples=("npm run dev",),
        categories=("frontend", "server"),
        validation_criteria=(
            ValidationCriterion("url_accessible", "http://localhost:3000", "Dev server responds"),
        ),
    ),
    "frontend-build-verification": StepTemplate(
        title="Verify Frontend Build",
        description="Build the production bundle and run the frontend tests",
        estimated_time=10,
        instructions=("Run the production build", "Run the frontend test suite"),
        code_examples=("npm run build", "npm test"),
        categories=("frontend", "build"),
        validation_criteria=(ValidationCriterion("command_success", "npm run build", "Build succeeds"),),
    ),
    # Backend
    "environment-config": StepTemplate(
        title="Configure Environment Variables",
        description="Create the local environment file from the template",
        estimated_time=5,
        instructions=("Copy .env.example to .env", "Fill in local values"),
        code_examples=("cp .env.example .env",),
        categories=("backend", "configuration"),
        validation_criteria=(ValidationCriterion("file_exists", ".env", "Environment file exists"),),
    ),
    "database-setup": StepTemplate(
        title="Database Setup",
        description="Provision the local database and run migrations",
        estimated_time=25,
        instructions=(
            "Start the database server",
            "Create the development database",
            "Run migrations",
        ),
        code_examples=("createdb app_dev", "npm run migrate"),
        categories=("backend", "database"),
        validation_criteria=(
            ValidationCriterion("connection_string", "postgresql://", "Database connection works"),
        ),
        validator="database-connection",
    ),
    "backend-start": StepTemplate(
        title="Start Backend Server",
        description="Start the API server locally",
        estimated_time=10,
        instructions=("Start the API server", "Check the health endpoint"),
        code_examples=("npm run start:api", "curl http://localhost:8000/health"),
        categories=("backend", "server"),
        validation_criteria=(
            ValidationCriterion("url_accessible", "http://localhost:8000/health", "API responds"),
        ),
    ),
    "api-test": StepTemplate(
        title="API Testing",
        description="Run the API test suite",
        estimated_time=15,
        instructions=("Run the API tests", "Exercise one endpoint by hand"),
        code_examples=("npm run test:api",),
        categories=("backend", "testing"),
        validation_criteria=(ValidationCriterion("command_success", "npm run test:api", "API tests pass"),),
    ),
    # Fullstack
    "deployment-setup": StepTemplate(
        title="Deployment Setup",
        description="Deploy the application to a personal preview environment",
        estimated_time=30,
        instructions=("Configure deployment credentials", "Deploy a preview build"),
        code_examples=("npm run deploy:preview",),
        categories=("deployment",),
    ),
    "monitoring-setup": StepTemplate(
        title="Monitoring Setup",
        description="Find the dashboards, alerts and logs for the application",
        estimated_time=25,
        instructions=("Open the service dashboards", "Subscribe to alert notifications"),
        categories=("operations", "monitoring"),
    ),
    # DevOps
    "docker-setup": StepTemplate(
        title="Container Tooling Setup",
        description="Install Docker and build the application images",
        estimated_time=20,
        instructions=("Install Docker", "Build the application images"),
        code_examples=("docker --version", "docker compose build"),
        categories=("devops", "containers"),
        validation_criteria=(ValidationCriterion("command_success", "docker info", "Docker daemon running"),),
    ),
    "infrastructure-setup": StepTemplate(
        title="Infrastructure Setup",
        description="Provision the infrastructure-as-code tooling and a sandbox stack",
        estimated_time=45,
        instructions=("Install the IaC toolchain", "Plan and apply the sandbox stack"),
        code_examples=("terraform init", "terraform plan"),
        categories=("devops", "infrastructure"),
    ),
    "kubernetes-deployment": StepTemplate(
        title="Kubernetes Deployment",
        description="Deploy the application to the sandbox cluster",
        estimated_time=30,
        instructions=("Configure kubectl for the sandbox cluster", "Apply the manifests"),
        code_examples=("kubectl apply -f deploy/",),
        categories=("devops", "kubernetes"),
    ),
    "ci-cd-setup": StepTemplate(
        title="CI/CD Pipeline Setup",
        description="Walk through the build and release pipelines",
        estimated_time=30,
        instructions=("Trigger a pipeline run on a branch", "Inspect build and release stages"),
        categories=("devops", "ci-cd"),
    ),
    "security-setup": StepTemplate(
        title="Security Setup",
        description="Configure secret management and scanning",
        estimated_time=25,
        instructions=("Configure access to the secret store", "Run the dependency scanner"),
        categories=("devops", "security"),
    ),
    "backup-setup": StepTemplate(
        title="Backup Setup",
        description="Verify backups and practise a restore",
        estimated_time=20,
        instructions=("List the latest backups", "Restore a backup into the sandbox"),
        categories=("devops", "backup"),
    ),
    "deployment": StepTemplate(
        title="Production-like Deployment",
        description="Ship a release through the full pipeline to staging",
        estimated_time=30,
        instructions=("Cut a release candidate", "Promote it to staging"),
        categories=("devops", "deployment"),
    ),
}
